from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class DType:
    name: str

    def __repr__(self):
        return f"dtypes.{self.name}"

    @property
    def numpy_dtype(self) -> np.dtype:
        return np.dtype(self.name)

    @property
    def is_numeric(self) -> bool:
        return self.name != "object"


class dtypes:
    # any Python value; the default element type
    object = DType("object")
    bool = DType("bool")
    int32 = DType("int32")
    int64 = DType("int64")
    float32 = DType("float32")
    float64 = DType("float64")

    @staticmethod
    def from_numpy(dtype) -> DType:
        name = np.dtype(dtype).name
        if name == "object":
            return dtypes.object
        return DType(name)
