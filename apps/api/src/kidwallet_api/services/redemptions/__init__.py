from .workflow import CASHOUT_REASON, RedemptionWorkflow, TERMINAL_STATUSES, cashout_idempotency_key

__all__ = ["CASHOUT_REASON", "RedemptionWorkflow", "TERMINAL_STATUSES", "cashout_idempotency_key"]
