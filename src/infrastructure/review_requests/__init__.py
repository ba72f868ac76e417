from src.infrastructure.review_requests.in_memory import InMemoryReviewRequestRepository
from src.infrastructure.review_requests.postgres import PostgresReviewRequestRepository

__all__ = ["InMemoryReviewRequestRepository", "PostgresReviewRequestRepository"]
