"""Pydantic schemas for bundle measurements."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

BudgetStatus = Literal["ok", "warning", "error"]
BundleType = Literal["client", "server"]


class BundleInfo(BaseModel):
    """One measured build artifact."""

    model_config = {"from_attributes": True}

    name: str = Field(min_length=1)
    size: int = Field(ge=0)
    gzip_size: Optional[int] = Field(default=None, ge=0)
    delta: Optional[int] = None
    status: BudgetStatus = "ok"
    type: Optional[BundleType] = None

    @model_validator(mode="after")
    def check_gzip_not_larger(self) -> "BundleInfo":
        if self.gzip_size is not None and self.gzip_size > self.size:
            raise ValueError(
                f"gzip_size ({self.gzip_size}) must not exceed size ({self.size}) for {self.name}"
            )
        return self


class BundleHistoryItem(BundleInfo):
    """A stored bundle tagged with the build it belongs to."""

    build_id: int


class BundleDiff(BaseModel):
    """Size change of a bundle present in both compared builds."""

    name: str
    old_size: int
    new_size: int
    delta: int
    old_gzip_size: Optional[int] = None
    new_gzip_size: Optional[int] = None
    gzip_delta: Optional[int] = None


class BundleChange(BaseModel):
    """Significant per-bundle change between two watch cycles."""

    name: str
    previous_size: int
    current_size: int
    delta: int
    percentage: float
    is_regression: bool
    added: bool = False
    removed: bool = False
