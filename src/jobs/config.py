from pydantic import BaseModel

MARK_TO_MARKET = "mark-to-market"
SCREENING = "screening"


class JobConfig(BaseModel):
    """Config for the daily batch jobs."""
    global_checkpoint_id: str = "__GLOBAL__"
    setup_retry_delay: float = 1.0
    setup_max_retries: int = 1
    suspicious_return_threshold: float = 0.5
    consistency_tolerance: float = 0.01
    fill_gaps: bool = True
    show_progress: bool = True
