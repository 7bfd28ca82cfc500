"""
Request signing for the SolisCloud API.

Every call carries a `Content-MD5` of the body and an `Authorization` header of the
form `API <key>:<signature>`, where the signature is a base64 HMAC-SHA1 over

    METHOD \\n CONTENT-MD5 \\n CONTENT-TYPE \\n DATE \\n URL-PATH

Signing is deterministic: the caller supplies the date string, so the same inputs
always produce the same header.
"""

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from email.utils import formatdate

from .constants import SOLIS_SIGN_CONTENT_TYPE


def canonical_body(body):
    """Serialize a structured body to compact JSON; text bodies are used as is."""
    if body is None:
        return ""
    if isinstance(body, (dict, list)):
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False)
    return str(body)


def content_md5(data):
    """Base64 encoded MD5 digest of a string or bytes object."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


def hmac_sha1(message, secret):
    """Base64 encoded HMAC-SHA1 of `message` keyed with `secret`."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    return base64.b64encode(hmac.new(secret, message, hashlib.sha1).digest()).decode(
        "ascii"
    )


def rfc1123_now():
    """Current time as an RFC 1123 date, the format of the `Time` header."""
    return formatdate(usegmt=True)


@dataclass(frozen=True)
class SignedRequest:
    """All values needed to send one signed request."""

    body: str
    md5: str
    string_to_sign: str
    signature: str
    authorization: str
    date: str


class RequestSigner:
    """
    Signs SolisCloud requests with the account's key id and secret.
    """

    def __init__(self, access_key, secret):
        self.access_key = str(access_key)
        self.secret = secret

    @staticmethod
    def string_to_sign(method, md5, content_type, date, url):
        """Build the newline separated string the signature is computed over."""
        return "\n".join([method, md5, content_type, date, url])

    def sign(
        self, url, body=None, method="POST", date=None, content_type=SOLIS_SIGN_CONTENT_TYPE
    ):
        """
        Sign a request.

        Args:
            url (str): URL path, e.g. "/v2/api/control".
            body (dict|str): request payload.
            method (str): HTTP method.
            date (str): RFC 1123 date; defaults to now.
            content_type (str): content type included in the string to sign.

        Returns:
            SignedRequest
        """
        date = date or rfc1123_now()
        data = canonical_body(body)
        md5 = content_md5(data)
        sts = self.string_to_sign(method, md5, content_type, date, url)
        signature = hmac_sha1(sts, self.secret)
        return SignedRequest(
            body=data,
            md5=md5,
            string_to_sign=sts,
            signature=signature,
            authorization=f"API {self.access_key}:{signature}",
            date=date,
        )
