from unittest.mock import AsyncMock, patch

import httpx
import pytest


@pytest.fixture
def mock_send():
    """Replace the upstream transport; tests set return_value or side_effect."""
    with patch.object(httpx.AsyncClient, "send", new_callable=AsyncMock) as send:
        yield send
