"""Core business logic.

Modules:
- personalization: request/response contract and validator
- personalizer: swappable personalization generators
- permissions: role ranks, landing routes and route allow-lists
- submission_analysis: AI analysis of student submissions
- class_digest: weekly class digest (KPIs + AI insights)
"""

__all__ = [
    "personalization",
    "personalizer",
    "permissions",
    "submission_analysis",
    "class_digest",
]
