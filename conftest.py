import httpx
import pytest

from webrelay.lookup import IPRecord, StaticIPLookup
from webrelay.reverse_proxy import ConnectionPool, ReverseProxy


@pytest.fixture
def upstream_requests():
    """Requests seen by the stubbed upstream, in order."""
    return []


@pytest.fixture
def upstream_transport(upstream_requests):
    """An httpx transport answering 200 with X-Foo: bar and an empty body."""

    def handler(request: httpx.Request) -> httpx.Response:
        upstream_requests.append(request)
        return httpx.Response(
            200, headers={"X-Foo": "bar"}, stream=httpx.ByteStream(b"")
        )

    return httpx.MockTransport(handler)


@pytest.fixture
def mock_pool(upstream_transport):
    return ConnectionPool(transport=upstream_transport)


@pytest.fixture
def mock_proxy(mock_pool):
    """A ReverseProxy whose upstream clients all talk to the stub transport."""
    return ReverseProxy(pool=mock_pool)


@pytest.fixture
def static_lookup():
    return StaticIPLookup(
        {
            "8.8.8.0/24": IPRecord(15169, "GOOGLE", "US"),
            "1.1.1.0/24": IPRecord(13335, "CLOUDFLARENET", "AU"),
            "2001:4860::/32": IPRecord(15169, "GOOGLE", "US"),
        }
    )


@pytest.fixture
def site_dir(tmp_path):
    """A small document root with a secret file next to it."""
    root = tmp_path / "public"
    (root / "sub").mkdir(parents=True)
    (root / "index.html").write_text("<h1>index</h1>")
    (root / "file.txt").write_text("file contents")
    (root / "sub" / "nested.txt").write_text("nested contents")
    (tmp_path / "secret.txt").write_text("top secret")
    return root
