"""Unit tests for the relay RateLimiter"""
import pytest

from relay.rate_limiter import RateLimiter


class FakeTime:
    def __init__(self) -> None:
        self.value = 100.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def limiter(fake_time):
    return RateLimiter(messages_per_window=3, window_seconds=1.0, cooldown_seconds=2.0, now=fake_time)


@pytest.mark.unit
class TestRateLimiterAllows:
    """Test RateLimiter allowing messages"""

    def test_first_message_allowed(self, limiter):
        """Test that first message is always allowed"""
        assert limiter.check("user_1") is None

    def test_messages_within_limit_allowed(self, limiter):
        """Test that messages within limit are allowed"""
        for i in range(3):
            assert limiter.check("user_1") is None, f"Message {i + 1} should be allowed"

    def test_different_users_independent(self, limiter):
        """Test that different users have independent limits"""
        for _ in range(3):
            limiter.check("user_1")
        assert limiter.check("user_2") is None

    def test_window_slides(self, limiter, fake_time):
        """Test that old sends fall out of the window"""
        for _ in range(3):
            limiter.check("user_1")
        fake_time.value += 1.5
        assert limiter.check("user_1") is None


@pytest.mark.unit
class TestRateLimiterBlocks:
    """Test RateLimiter blocking and cooldown"""

    def test_exceeding_limit_blocks(self, limiter):
        """Test that the fourth message in a window is refused"""
        for _ in range(3):
            limiter.check("user_1")
        error = limiter.check("user_1")
        assert error == "Too many messages. Try again in 2 second(s)."
        assert limiter.is_blocked("user_1")

    def test_cooldown_message(self, limiter, fake_time):
        """Test retry hint while cooling down"""
        for _ in range(4):
            limiter.check("user_1")
        fake_time.value += 0.5
        assert limiter.check("user_1") == "Rate limited. Try again in 2 second(s)."

    def test_cooldown_expires(self, limiter, fake_time):
        """Test that sending resumes after the cooldown"""
        for _ in range(4):
            limiter.check("user_1")
        fake_time.value += 2.5
        assert limiter.check("user_1") is None
        assert not limiter.is_blocked("user_1")


@pytest.mark.unit
class TestRateLimiterMaintenance:
    """Test reset and cleanup"""

    def test_reset_user(self, limiter):
        """Test that reset clears a block"""
        for _ in range(4):
            limiter.check("user_1")
        limiter.reset_user("user_1")
        assert limiter.check("user_1") is None

    def test_cleanup_idle(self, limiter, fake_time):
        """Test that idle users are forgotten"""
        limiter.check("user_1")
        fake_time.value += 10
        limiter.check("user_2")
        assert limiter.cleanup_idle(max_idle_seconds=5) == 1
        assert list(limiter.user_windows) == ["user_2"]
