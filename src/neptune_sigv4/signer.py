"""
SigV4 signing of WebSocket upgrade requests.

:class:`SigV4RequestSigner` is a request decorator: it takes an unsigned
:class:`~neptune_sigv4.http_messages.HandshakeRequest` and returns a signed, frozen
copy. The signature itself is computed by ``botocore``.
"""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from botocore.auth import SIGV4_TIMESTAMP, SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import ReadOnlyCredentials

from .config import NEPTUNE_SERVICE_NAME
from .credentials import CredentialsProvider
from .exceptions import CredentialsUnavailableError, SigningError
from .http_messages import HandshakeRequest

log = logging.getLogger(__name__)

# Headers added by signing, in the order they are appended to the request
AMZ_DATE_HEADER = "x-amz-date"
SECURITY_TOKEN_HEADER = "X-Amz-Security-Token"
AUTHORIZATION_HEADER = "Authorization"
SIGNATURE_HEADERS = (AMZ_DATE_HEADER, SECURITY_TOKEN_HEADER, AUTHORIZATION_HEADER)


class _TimestampedSigV4Auth(SigV4Auth):
    """SigV4Auth that signs for a given instant instead of the current time."""

    def __init__(
        self,
        credentials: ReadOnlyCredentials,
        service_name: str,
        region_name: str,
        timestamp: datetime.datetime,
    ) -> None:
        super().__init__(credentials, service_name, region_name)
        self._timestamp = timestamp

    def add_auth(self, request: AWSRequest) -> None:
        request.context["timestamp"] = self._timestamp.strftime(SIGV4_TIMESTAMP)
        self._modify_request_before_signing(request)
        canonical_request = self.canonical_request(request)
        log.debug(f"CanonicalRequest:\n{canonical_request}")
        string_to_sign = self.string_to_sign(request, canonical_request)
        signature = self.signature(string_to_sign, request)
        self._inject_signature_to_request(request, signature)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class SigV4RequestSigner:
    """
    Signs handshake requests with AWS SigV4.

    The region is fixed at construction; credentials are resolved from the
    provider on every call to :meth:`sign`.
    """

    def __init__(
        self,
        region: str,
        credentials_provider: CredentialsProvider,
        service: str = NEPTUNE_SERVICE_NAME,
    ) -> None:
        if not region or not region.strip():
            raise ValueError("region must not be blank")
        self.region = region
        self.credentials_provider = credentials_provider
        self.service = service

    def sign(
        self,
        request: HandshakeRequest,
        timestamp: Optional[datetime.datetime] = None,
    ) -> HandshakeRequest:
        """
        Sign ``request``.

        All headers of ``request`` are covered by the signature. The returned
        request carries the original headers followed by ``x-amz-date``, the
        session token if any and ``Authorization``, and is frozen.

        :param request: The unsigned request, left unmodified
        :param timestamp: Signing time (naive UTC), defaults to now
        :return: The signed request
        :raises CredentialsUnavailableError: If credentials cannot be resolved
        :raises SigningError: If the signature cannot be computed
        """
        try:
            credentials = self.credentials_provider.resolve()
        except CredentialsUnavailableError:
            raise
        except Exception as e:
            raise CredentialsUnavailableError(
                f"Exception occurred while resolving credentials: {e}"
            ) from e
        if credentials is None:
            raise CredentialsUnavailableError("Credentials provider returned no credentials")

        signed = request.copy()
        for name in SIGNATURE_HEADERS:
            signed.headers.pop(name, None)

        aws_request = AWSRequest(
            method=signed.method,
            url=signed.signing_url,
            headers=dict(signed.headers.items()),
        )

        signer = _TimestampedSigV4Auth(
            credentials, self.service, self.region, timestamp or _utcnow()
        )
        try:
            signer.add_auth(aws_request)
        except Exception as e:
            raise SigningError(f"Exception occurred while signing the request: {e}") from e

        for name in SIGNATURE_HEADERS:
            value = aws_request.headers.get(name)
            if value is not None:
                signed.headers[name] = value

        log.debug(f"Signed upgrade request for {signed.uri} in region {self.region}")
        return signed.freeze()
