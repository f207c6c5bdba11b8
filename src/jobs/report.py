from pydantic import BaseModel, Field
from typing import List, Dict, Optional
from datetime import date


class JobReport(BaseModel):
    """Track batch progress and per-index errors."""

    job_type: str
    run_date: date
    attempted: List[str] = Field(default_factory=list)
    successes: Dict[str, str] = Field(default_factory=dict)
    skipped: Dict[str, str] = Field(default_factory=dict)
    failures: Dict[str, str] = Field(default_factory=dict)
    resumed_after: Optional[str] = None

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def add_attempt(self, index_id: str) -> None:
        self.attempted.append(index_id)

    def add_success(self, index_id: str, detail: str = "ok") -> None:
        self.successes[index_id] = detail

    def add_skip(self, index_id: str, reason: str) -> None:
        self.skipped[index_id] = reason

    def add_failure(self, index_id: str, error: str) -> None:
        self.failures[index_id] = error

    def error_lines(self) -> List[str]:
        return [f"{index_id}: {error}" for index_id, error in self.failures.items()]
