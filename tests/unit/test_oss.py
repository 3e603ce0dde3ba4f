"""
Tests for OSS upload signing
"""

import re
from datetime import datetime, timedelta, timezone

from reverse_api.signing.oss import (
    ALGORITHM,
    UNSIGNED_PAYLOAD,
    OssCredentials,
    OssObject,
    canonical_request,
    format_oss_date,
    sign_upload,
)

CREDENTIALS = OssCredentials(
    access_key_id="STS.testkey",
    access_key_secret="secret",
    security_token="token-123",
)
OBJECT = OssObject(
    bucket="qwen-webui-prod",
    region="oss-ap-southeast-1",
    file_path="user/abc/photo.png",
    content_type="image/png",
)
MOMENT = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class TestOssObject:
    def test_canonical_uri(self):
        assert OBJECT.canonical_uri == "/qwen-webui-prod/user/abc/photo.png"

    def test_short_region(self):
        assert OBJECT.short_region == "ap-southeast-1"
        plain = OssObject("b", "cn-hangzhou", "f", "text/plain")
        assert plain.short_region == "cn-hangzhou"


class TestFormatDate:
    def test_utc(self):
        assert format_oss_date(MOMENT) == "20250102T030405Z"

    def test_converts_offset(self):
        local = MOMENT.astimezone(timezone(timedelta(hours=8)))

        assert format_oss_date(local) == "20250102T030405Z"


class TestCanonicalRequest:
    def test_shape(self):
        request = canonical_request(OBJECT, "20250102T030405Z", "token-123")

        assert request.startswith("PUT\n/qwen-webui-prod/user/abc/photo.png\n\n")
        assert "content-type:image/png\n" in request
        assert "x-oss-security-token:token-123\n" in request
        assert request.endswith(f"\n\n{UNSIGNED_PAYLOAD}")


class TestSignUpload:
    def test_deterministic(self):
        assert sign_upload(CREDENTIALS, OBJECT, MOMENT) == sign_upload(CREDENTIALS, OBJECT, MOMENT)

    def test_authorization_format(self):
        signed = sign_upload(CREDENTIALS, OBJECT, MOMENT)

        pattern = (
            rf"^{ALGORITHM} Credential=STS\.testkey/20250102/ap-southeast-1/oss/"
            r"aliyun_v4_request,Signature=[0-9a-f]{64}$"
        )
        assert re.match(pattern, signed.authorization)
        assert signed.oss_date == "20250102T030405Z"

    def test_headers(self):
        headers = sign_upload(CREDENTIALS, OBJECT, MOMENT).headers

        assert headers["authorization"].startswith(ALGORITHM)
        assert headers["content-type"] == "image/png"
        assert headers["x-oss-date"] == "20250102T030405Z"
        assert headers["x-oss-security-token"] == "token-123"
        assert headers["x-oss-content-sha256"] == UNSIGNED_PAYLOAD

    def test_inputs_change_signature(self):
        base = sign_upload(CREDENTIALS, OBJECT, MOMENT).authorization
        later = sign_upload(CREDENTIALS, OBJECT, MOMENT + timedelta(seconds=1)).authorization
        other_secret = OssCredentials("STS.testkey", "other", "token-123")

        assert base != later
        assert base != sign_upload(other_secret, OBJECT, MOMENT).authorization
