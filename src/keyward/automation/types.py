from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict


class RotationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class RotationReason(str, Enum):
    FETCH_FAILED = "fetch_failed"
    MFA_REQUIRED = "mfa_required"
    LOGIN_FAILED = "login_failed"
    NAVIGATION_FAILED = "navigation_failed"
    CHANGE_FAILED = "change_failed"
    VAULT_UPDATE_FAILED = "vault_update_failed"
    ERROR = "error"


class RotationState(str, Enum):
    FETCH = "fetch"
    GENERATE = "generate"
    LOGIN = "login"
    NAVIGATE_CHANGE = "navigate_change"
    CHANGE_STEPS = "change_steps"
    PERSIST_HISTORY = "persist_history"
    DONE = "done"


@dataclass
class RotationResult:
    credential_id: str
    name: str
    status: RotationStatus
    reason: Optional[RotationReason] = None
    detail: str = ""
    dry_run: bool = False
    preview: str = ""
    state: RotationState = RotationState.DONE

    @classmethod
    def success(cls, credential_id: str, name: str, preview: str = "", dry_run: bool = False) -> "RotationResult":
        return cls(credential_id, name, RotationStatus.SUCCESS, preview=preview, dry_run=dry_run)

    @classmethod
    def failed(cls, credential_id: str, name: str, reason: RotationReason, detail: str = "",
               state: RotationState = RotationState.DONE) -> "RotationResult":
        return cls(credential_id, name, RotationStatus.FAILED, reason=reason, detail=detail, state=state)

    @classmethod
    def skipped(cls, credential_id: str, name: str, reason: RotationReason, detail: str = "") -> "RotationResult":
        return cls(credential_id, name, RotationStatus.SKIPPED, reason=reason, detail=detail)

    @property
    def reason_code(self) -> str:
        return self.reason.value if self.reason else ""


@dataclass
class RotationSummary:
    results: List[RotationResult] = field(default_factory=list)

    def add(self, result: RotationResult) -> None:
        self.results.append(result)

    def count(self, status: RotationStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def succeeded(self) -> int:
        return self.count(RotationStatus.SUCCESS)

    @property
    def skipped(self) -> int:
        return self.count(RotationStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(RotationStatus.FAILED)

    def counts(self) -> Dict[str, int]:
        return {s.value: self.count(s) for s in RotationStatus}
