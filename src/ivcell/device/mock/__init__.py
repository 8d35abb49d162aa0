from .mock_ivium import MockIviumDriver

__all__ = ["MockIviumDriver"]
