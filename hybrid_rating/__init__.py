"""Hybrid rating prediction for user-item (book) ratings.

Core idea:
- Keep observed ratings in an immutable sparse store
- Predict with user-user CF, item-item CF and a latent-factor model
- Average the three into one ensemble estimate and score everything by RMSE
"""
