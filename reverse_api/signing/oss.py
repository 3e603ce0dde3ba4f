"""
OSS v4 upload signing.

Signs a direct-to-bucket ``PUT`` so the storage gateway accepts the file
without it passing through the chat backend. Everything here is a pure
function of its arguments; the timestamp is always supplied by the caller.
"""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone

ALGORITHM = "OSS4-HMAC-SHA256"
SERVICE = "oss"
REQUEST_TYPE = "aliyun_v4_request"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
OSS_USER_AGENT = "aliyun-sdk-js/6.23.0 Chrome 142.0.0.0 on OS X 10.15.7 64-bit"


@dataclass(frozen=True)
class OssCredentials:
    """Short-lived STS credentials issued for a single upload."""

    access_key_id: str
    access_key_secret: str
    security_token: str


@dataclass(frozen=True)
class OssObject:
    bucket: str
    region: str
    file_path: str
    content_type: str

    @property
    def canonical_uri(self) -> str:
        return f"/{self.bucket}/{self.file_path}"

    @property
    def short_region(self) -> str:
        return self.region[4:] if self.region.startswith("oss-") else self.region


@dataclass(frozen=True)
class SignedUpload:
    authorization: str
    oss_date: str
    headers: dict[str, str]


def format_oss_date(moment: datetime) -> str:
    """``YYYYMMDDTHHMMSSZ`` in UTC."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y%m%dT%H%M%SZ")


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret: str, date_short: str, region: str) -> bytes:
    k_date = _hmac(f"aliyun_v4{secret}".encode("utf-8"), date_short)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, SERVICE)
    return _hmac(k_service, REQUEST_TYPE)


def canonical_request(obj: OssObject, oss_date: str, security_token: str) -> str:
    canonical_headers = (
        f"content-type:{obj.content_type}\n"
        f"x-oss-content-sha256:{UNSIGNED_PAYLOAD}\n"
        f"x-oss-date:{oss_date}\n"
        f"x-oss-security-token:{security_token}\n"
        f"x-oss-user-agent:{OSS_USER_AGENT}\n"
    )
    return f"PUT\n{obj.canonical_uri}\n\n{canonical_headers}\n\n{UNSIGNED_PAYLOAD}"


def sign_upload(credentials: OssCredentials, obj: OssObject, timestamp: datetime) -> SignedUpload:
    """
    Sign one upload.

    Args:
        credentials: STS credentials from the chat backend
        obj: Target bucket object and its content type
        timestamp: Signing instant; identical inputs give identical output

    Returns:
        The ``Authorization`` value plus the full header set for the PUT.
    """
    oss_date = format_oss_date(timestamp)
    date_short = oss_date[:8]
    region = obj.short_region
    scope = f"{date_short}/{region}/{SERVICE}/{REQUEST_TYPE}"

    request_hash = hashlib.sha256(
        canonical_request(obj, oss_date, credentials.security_token).encode("utf-8")
    ).hexdigest()
    string_to_sign = f"{ALGORITHM}\n{oss_date}\n{scope}\n{request_hash}"

    key = derive_signing_key(credentials.access_key_secret, date_short, region)
    signature = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    authorization = (
        f"{ALGORITHM} Credential={credentials.access_key_id}/{scope},Signature={signature}"
    )
    headers = {
        "authorization": authorization,
        "content-type": obj.content_type,
        "x-oss-date": oss_date,
        "x-oss-security-token": credentials.security_token,
        "x-oss-content-sha256": UNSIGNED_PAYLOAD,
        "x-oss-user-agent": OSS_USER_AGENT,
    }
    return SignedUpload(authorization=authorization, oss_date=oss_date, headers=headers)
