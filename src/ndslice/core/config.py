from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ndslice.core.dtype import DType, dtypes
from ndslice.utils.helpers import DEBUG


class NDConfig(BaseModel):
    """Allocation settings for an NDBuffer.

    Attributes:
        dtype: Element type of the backing storage. Accepts a `DType`, a numpy
            dtype or its name (e.g. "float32"). Defaults to `dtypes.object`,
            which stores arbitrary Python values.
        max_elements: Optional ceiling on the number of elements a single
            buffer may hold. Requests above it raise `AllocationFailed`.
        debug_checks: Re-check the precondition of `get_unchecked`.
            Defaults to the DEBUG environment flag.
    """

    dtype: DType = dtypes.object
    max_elements: Optional[int] = Field(default=None, ge=0)
    debug_checks: bool = DEBUG >= 1

    @field_validator("dtype", mode="before")
    @classmethod
    def ensure_dtype(cls, v):
        if isinstance(v, DType):
            return v
        return dtypes.from_numpy(v)

    class Config:  # noqa: D106
        arbitrary_types_allowed = True
        frozen = True
