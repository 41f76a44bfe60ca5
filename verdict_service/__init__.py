"""
Verdict Service - Feedback Requests, Judge Verdicts and Credits
===============================================================

Domain layer for the Verdict product:
1. Credit ledger with atomic deduct/refund and an audit trail
2. Verdict requests paid for with credits, closed when enough judges respond
3. Judge verdict recording (one per judge per request, no self-judging)
4. Consensus synthesis of several verdicts via an LLM (Pro tier)
"""

__version__ = "1.0.0"
