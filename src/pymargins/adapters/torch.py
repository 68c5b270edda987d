"""
Adapter for torch modules.

The coefficient vector is the module's flattened parameter vector. Each
prediction runs the module functionally (torch.func.functional_call) with
the given coefficients, so the module itself is never modified and
concurrent calls are safe.
"""

from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import torch
from torch import Tensor, nn
from torch.func import functional_call

from .base import BaseAdapter
from ..schema import VariableDescriptor, infer_schema


class TorchAdapter(BaseAdapter):
    """
    Wrap an nn.Module mapping (n, d) features to (n,) or (n, 1) outputs.

    The raw module output is the link scale; response_fn (e.g.
    torch.sigmoid) maps it to the response scale. Use a float64 module
    (module.double()) for finite differences.

    Examples:
        net = nn.Sequential(nn.Linear(2, 8), nn.Tanh(), nn.Linear(8, 1)).double()
        adapter = TorchAdapter(net, features=["x1", "x2"], covariance=V, data=df)
    """

    def __init__(
        self,
        module: nn.Module,
        features: Sequence[str],
        covariance=None,
        data: Optional[pd.DataFrame] = None,
        schema: Optional[Sequence[VariableDescriptor]] = None,
        response_fn: Optional[Callable[[Tensor], Tensor]] = None,
        df_resid: Optional[float] = None,
    ):
        """
        Initialize torch adapter.

        Args:
            module: Trained network
            features: Data columns fed to the network, in input order
            covariance: (k, k) covariance of the flattened parameters;
                zeros if omitted
            data: Frame used to infer the schema
            schema: Variable descriptors (overrides inference from data)
            response_fn: Output transform for the response scale
            df_resid: Residual degrees of freedom, if any
        """
        module.eval()
        self._module = module
        self._features = list(features)
        self._response_fn = response_fn

        named = [(name, p.detach()) for name, p in module.named_parameters()]
        if not named:
            raise ValueError("Module has no parameters")
        self._dtype = named[0][1].dtype
        self._device = named[0][1].device
        self._layout = [(name, p.shape, p.numel()) for name, p in named]

        values = torch.cat([p.reshape(-1) for _, p in named]).cpu().numpy()
        names = [f"{name}[{i}]" for name, _, size in self._layout for i in range(size)]
        coefs = pd.Series(values.astype(np.float64), index=names)

        if covariance is None:
            covariance = np.zeros((len(coefs), len(coefs)))
        if schema is None:
            if data is None:
                raise ValueError("Must provide either 'schema' or 'data'")
            schema = infer_schema(pd.DataFrame(data), self._features)
        if data is not None:
            data = pd.DataFrame(data)

        super().__init__(coefs, covariance, schema, df_resid, data)

    @property
    def features(self) -> List[str]:
        return list(self._features)

    def unflatten(self, vector: Tensor) -> Dict[str, Tensor]:
        """Split a flat coefficient vector into named parameter tensors."""
        params = {}
        offset = 0
        for name, shape, size in self._layout:
            params[name] = vector[offset:offset + size].reshape(shape)
            offset += size
        return params

    def predict(
        self,
        data: pd.DataFrame,
        coefficients: np.ndarray,
        scale: str = "response",
    ) -> np.ndarray:
        x = torch.as_tensor(
            np.asarray(data[self._features], dtype=np.float64),
            dtype=self._dtype,
            device=self._device,
        )
        vector = torch.as_tensor(
            np.asarray(coefficients, dtype=np.float64),
            dtype=self._dtype,
            device=self._device,
        )

        with torch.no_grad():
            out = functional_call(self._module, self.unflatten(vector), (x,))
            if scale == "response" and self._response_fn is not None:
                out = self._response_fn(out)

        return out.reshape(-1).cpu().numpy().astype(np.float64)
