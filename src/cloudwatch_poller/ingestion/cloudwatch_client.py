# AWS CloudWatch Logs client

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    CredentialRetrievalError,
    NoCredentialsError,
    NoRegionError,
    PartialCredentialsError,
    ProfileNotFound,
    ReadTimeoutError,
)
from typing import List, Optional
import time

from .base import BaseLogClient
from .config import StreamFilter, StreamFilterKind
from .errors import (
    AuthorizationError,
    ConfigurationError,
    PollerError,
    RetrievalTimeoutError,
    SourceNotFoundError,
    TransientRetrievalError,
)
from .schema import RawEvent


# get_log_events returns at most this many events per call
MAX_PAGE_SIZE = 10000

AUTH_ERROR_CODES = {
    'AccessDenied',
    'AccessDeniedException',
    'AuthFailure',
    'ExpiredToken',
    'ExpiredTokenException',
    'IncompleteSignature',
    'InvalidClientTokenId',
    'InvalidSignatureException',
    'MissingAuthenticationToken',
    'SignatureDoesNotMatch',
    'UnauthorizedOperation',
    'UnrecognizedClientException',
}


class CloudWatchLogsClient(BaseLogClient):

    def __init__(
        self,
        region: str,
        profile: Optional[str] = None,
        connectTimeout: float = 10,
        readTimeout: float = 30,
        maxAttempts: int = 3,
        session: Optional[boto3.Session] = None,
        client=None
    ):
        super().__init__()
        self.region = region
        self.profile = profile
        self.connectTimeout = connectTimeout
        self.readTimeout = readTimeout
        self.maxAttempts = maxAttempts
        self.session = session
        self.logsClient = client

        if self.logsClient is None:
            self._initializeClient()

    def _initializeClient(self) -> None:
        try:
            if self.session is None:
                self.session = boto3.Session(
                    profile_name=self.profile or None,
                    region_name=self.region or None
                )

            self.logsClient = self.session.client(
                'logs',
                config=Config(
                    connect_timeout=self.connectTimeout,
                    read_timeout=self.readTimeout,
                    retries={'max_attempts': self.maxAttempts, 'mode': 'standard'}
                )
            )

            self.logger.info(f"CloudWatch Logs client initialized (region={self.region}, profile={self.profile})")
        except (ProfileNotFound, NoRegionError) as e:
            raise ConfigurationError(f"Unable to create CloudWatch Logs client: {e}") from e

    def testConnection(self) -> bool:
        try:
            if self.session is not None:
                stsClient = self.session.client('sts')
            else:
                stsClient = boto3.client('sts', region_name=self.region or None)
            response = stsClient.get_caller_identity()
            self.logger.info(f"AWS connection successful. Account: {response['Account']}")
            return True
        except (ClientError, BotoCoreError) as e:
            self.handleError(e, "AWS connection test")
            return False

    def listGroups(self, prefix: str) -> List[str]:
        paginator = self.logsClient.get_paginator('describe_log_groups')
        kwargs = {'logGroupNamePrefix': prefix} if prefix else {}

        groups = []
        try:
            for page in paginator.paginate(**kwargs):
                groups.extend(g['logGroupName'] for g in page.get('logGroups', []))
        except (ClientError, BotoCoreError) as e:
            raise self._translateError(e, 'describe_log_groups', group=prefix) from e

        self.logger.debug(f"Found {len(groups)} log groups for prefix {prefix!r}")
        return groups

    def listStreams(self, group: str, streamFilter: StreamFilter) -> List[str]:
        # Explicit names are polled directly; missing ones surface as SourceNotFoundError
        if streamFilter.kind == StreamFilterKind.NAMES:
            return list(streamFilter.names)

        paginator = self.logsClient.get_paginator('describe_log_streams')
        kwargs = {'logGroupName': group}
        if streamFilter.kind == StreamFilterKind.PREFIX and streamFilter.prefix:
            kwargs['logStreamNamePrefix'] = streamFilter.prefix

        streams = []
        try:
            for page in paginator.paginate(**kwargs):
                streams.extend(s['logStreamName'] for s in page.get('logStreams', []))
        except (ClientError, BotoCoreError) as e:
            raise self._translateError(e, 'describe_log_streams', group=group) from e

        return streams

    def getEvents(
        self,
        group: str,
        stream: str,
        startTimeMs: int,
        limit: int,
        deadline: Optional[float] = None
    ) -> List[RawEvent]:
        events: List[RawEvent] = []
        nextToken = None

        while len(events) < limit:
            if deadline is not None and time.monotonic() >= deadline:
                raise RetrievalTimeoutError("Timed out reading log events", group, stream)

            request = {
                'logGroupName': group,
                'logStreamName': stream,
                'startTime': max(0, int(startTimeMs)),
                'startFromHead': True,
                'limit': min(limit - len(events), MAX_PAGE_SIZE),
            }
            if nextToken:
                request['nextToken'] = nextToken

            try:
                response = self.logsClient.get_log_events(**request)
            except (ClientError, BotoCoreError) as e:
                raise self._translateError(e, 'get_log_events', group=group, stream=stream) from e

            page = response.get('events', [])
            events.extend(RawEvent.fromApi(event) for event in page)

            # The forward token repeats once the end of the stream is reached
            token = response.get('nextForwardToken')
            if not page or token is None or token == nextToken:
                break
            nextToken = token

        return events[:limit]

    def _translateError(
        self,
        error: Exception,
        operation: str,
        group: Optional[str] = None,
        stream: Optional[str] = None
    ) -> PollerError:
        if isinstance(error, (NoCredentialsError, PartialCredentialsError, CredentialRetrievalError)):
            return AuthorizationError(f"{operation}: {error}", group, stream)

        if isinstance(error, (ReadTimeoutError, ConnectTimeoutError)):
            return RetrievalTimeoutError(f"{operation} timed out: {error}", group, stream)

        if isinstance(error, ClientError):
            code = error.response.get('Error', {}).get('Code', '')
            if code in AUTH_ERROR_CODES:
                return AuthorizationError(f"{operation} denied ({code}): {error}", group, stream)
            if code == 'ResourceNotFoundException':
                return SourceNotFoundError(f"{operation}: {code}", group, stream)

        return TransientRetrievalError(f"{operation} failed: {error}", group, stream)
