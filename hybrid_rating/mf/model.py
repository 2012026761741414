from __future__ import annotations

import torch
import torch.nn as nn


class LatentFactorModel(nn.Module):
    """Plain MF model: dot(user_factor, item_factor), no bias terms.

    Factor tables are sparse embeddings so an SGD step only touches the rows
    of the users and items in the current batch.
    """

    def __init__(
        self,
        n_users: int,
        n_items: int,
        *,
        n_factors: int = 20,
        init_std: float = 0.1,
        generator: torch.Generator | None = None,
    ) -> None:
        super().__init__()
        self.user_factors = nn.Embedding(int(n_users), int(n_factors), sparse=True, dtype=torch.float64)
        self.item_factors = nn.Embedding(int(n_items), int(n_factors), sparse=True, dtype=torch.float64)
        self.reset_parameters(init_std=float(init_std), generator=generator)

    @torch.no_grad()
    def reset_parameters(self, *, init_std: float, generator: torch.Generator | None = None) -> None:
        for table in (self.user_factors, self.item_factors):
            noise = torch.randn(table.weight.shape, generator=generator, dtype=torch.float64)
            table.weight.copy_(noise * init_std)

    def forward(self, user_idx: torch.Tensor, item_idx: torch.Tensor) -> torch.Tensor:
        p = self.user_factors(user_idx)
        q = self.item_factors(item_idx)
        return (p * q).sum(dim=1)
