"""Qwen endpoints and browser headers."""

BASE_URL = "https://chat.qwen.ai"
PROVIDER = "qwen"
DEFAULT_MODEL = "qwen3-max"

FAKE_HEADERS = {
    "Accept": "*/*",
    "Accept-Encoding": "gzip, deflate, br",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Origin": "https://chat.qwen.ai",
    "Referer": "https://chat.qwen.ai/",
    "Sec-Ch-Ua": '"Chromium";v="142", "Google Chrome";v="142", "Not_A Brand";v="99"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"macOS"',
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
    ),
    "source": "web",
    "version": "0.0.235",
}


def build_headers(token: str | None = None, json_body: bool = True) -> dict[str, str]:
    """Per-request headers; the session already carries ``FAKE_HEADERS``."""
    headers: dict[str, str] = {}
    if token:
        headers["authorization"] = f"Bearer {token}"
    if json_body:
        headers["content-type"] = "application/json"
    return headers
