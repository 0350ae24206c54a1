"""Helpers shared by the test modules."""


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def slugs(permissions) -> set[str]:
    return {permission.slug for permission in permissions}
