"""GitHub issue triage bot.

This package implements an event-driven issue pipeline, providing:
- GitHub webhook intake with signature verification
- LLM-based issue classification and remediation plans
- A fix safety gate and an auto-fix pull request applicator
- Per-issue status tracking with an append-only audit log
- Per-repository rate limiting and per-issue locking
"""
