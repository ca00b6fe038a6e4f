import pytest


class FakeHandle:
    """Stands in for an asyncpg pool: answers fetchrow() from a query -> result map."""

    def __init__(self, responses=None, default=None):
        self.responses = dict(responses or {})
        self.default = default
        self.calls = []

    async def fetchrow(self, query, *args):
        self.calls.append((query, args))
        result = self.responses.get(query, self.default)
        if callable(result):
            result = result(*args)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def handle_factory():
    return FakeHandle
