"""
POS API response models and their interpretation.

Every POS endpoint answers with the same envelope:
    {"Data": ..., "Error": {"ErrCode": int, "ErrMsg": str} | null, "WarningMsg": [...] | null}
"""
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubmitOutcome(str, Enum):
    CONFIRMED = "confirmed"
    DUPLICATE = "duplicate"
    LOGICAL_FAILURE = "logical_failure"


class PosError(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    err_code: Optional[int] = Field(None, alias="ErrCode")
    err_msg: Optional[str] = Field(None, alias="ErrMsg")


class PosResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    data: Any = Field(None, alias="Data")
    error: Optional[PosError] = Field(None, alias="Error")
    warning_msg: Optional[List[Any]] = Field(None, alias="WarningMsg")

    @property
    def succeeded(self) -> bool:
        return self.data is not None

    @property
    def error_message(self) -> str:
        if self.error and self.error.err_msg:
            return self.error.err_msg
        return "POS returned neither data nor error"

    def is_duplicate_of(self, target: str, trx_no: str) -> bool:
        """True when the POS reports that ``trx_no`` was already imported."""
        if self.error is None or self.error.err_code != -1:
            return False
        return (self.error.err_msg or "").strip() == f"{target}: Trx. no. exists:{trx_no}"

    def outcome(self, target: str, trx_no: str) -> SubmitOutcome:
        if self.succeeded:
            return SubmitOutcome.CONFIRMED
        if self.is_duplicate_of(target, trx_no):
            return SubmitOutcome.DUPLICATE
        return SubmitOutcome.LOGICAL_FAILURE
