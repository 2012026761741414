"""Latent-factor (matrix factorization) rating model trained with regularized SGD."""
