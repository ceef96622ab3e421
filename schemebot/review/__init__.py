"""Human review gate and priority queue."""

from schemebot.review.gate import ReviewGate, compute_priority, effective_results, needs_review

__all__ = ["ReviewGate", "compute_priority", "effective_results", "needs_review"]
