"""Token estimation for Recollect."""

from recollect.tokens.estimator import TokenCounter, TokenEstimator, count_message_tokens

__all__ = ["TokenCounter", "TokenEstimator", "count_message_tokens"]
