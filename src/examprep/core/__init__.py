"""Core business logic.

Modules:
- adaptive_algorithm: IRT ability estimation, question selection, stopping rule
- question_bank: Stored questions (shared and per user)
- question_generator: LLM question generation
- test_repository: Adaptive test and session persistence
- adaptive_testing: Test creation and session service
- journeys: Learning journeys and goal progress
- progress: Topic progress tracking
- recommendation_engine: Ranked test recommendations
- missions: Mission templates, generation and scoring
"""

__all__ = [
    "adaptive_algorithm",
    "question_bank",
    "question_generator",
    "test_repository",
    "adaptive_testing",
    "journeys",
    "progress",
    "recommendation_engine",
    "missions",
]
