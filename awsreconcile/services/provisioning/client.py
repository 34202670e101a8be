"""
Async AWS client shared by all reconcilers.

AWSClient wraps one aioboto3 session and opens at most one service client
per AWS service, kept alive until close(). Reconcilers receive the client
explicitly and issue every request through call().
"""

import logging
from contextlib import AsyncExitStack
from typing import Any, Dict, Optional

import aioboto3

logger = logging.getLogger(__name__)


class AWSClient:
    """
    Remote client for the AWS control plane.

    Usage:
        async with AWSClient(region='us-east-1') as client:
            response = await client.call('emr', 'describe_cluster', ClusterId=cluster_id)
    """

    def __init__(
        self,
        region: Optional[str] = None,
        credentials: Optional[Dict[str, Any]] = None,
        endpoint_url: Optional[str] = None,
        session: Optional[Any] = None
    ):
        """
        Initialize AWS client.

        Args:
            region: AWS region name
            credentials: Credential dictionary (aws_access_key_id,
                aws_secret_access_key, aws_session_token)
            endpoint_url: Alternative endpoint, e.g. a local AWS emulator
            session: Existing aioboto3 session to reuse
        """
        credentials = credentials or {}
        self.region = region or 'us-east-1'
        self.endpoint_url = endpoint_url
        self.session = session or aioboto3.Session(
            aws_access_key_id=credentials.get('aws_access_key_id'),
            aws_secret_access_key=credentials.get('aws_secret_access_key'),
            aws_session_token=credentials.get('aws_session_token'),
            region_name=self.region
        )
        self._stack: Optional[AsyncExitStack] = None
        self._clients: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config_class: Any) -> 'AWSClient':
        """
        Build a client from a Config class.

        Args:
            config_class: Class from awsreconcile.config

        Returns:
            AWSClient instance
        """
        return cls(
            region=config_class.AWS_REGION,
            credentials={
                'aws_access_key_id': config_class.AWS_ACCESS_KEY_ID,
                'aws_secret_access_key': config_class.AWS_SECRET_ACCESS_KEY,
                'aws_session_token': config_class.AWS_SESSION_TOKEN,
            },
            endpoint_url=config_class.AWS_ENDPOINT_URL
        )

    async def __aenter__(self) -> 'AWSClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def client(self, service: str) -> Any:
        """
        Get the service client for an AWS service, opening it on first use.

        Args:
            service: AWS service name (emr, cloudtrail, ssm)

        Returns:
            aioboto3 service client
        """
        if service not in self._clients:
            if self._stack is None:
                self._stack = AsyncExitStack()
            kwargs = {'region_name': self.region}
            if self.endpoint_url:
                kwargs['endpoint_url'] = self.endpoint_url
            self._clients[service] = await self._stack.enter_async_context(
                self.session.client(service, **kwargs)
            )
            logger.debug(f"Opened {service} client in {self.region}")
        return self._clients[service]

    async def call(self, service: str, operation: str, **params: Any) -> Dict[str, Any]:
        """
        Issue one request.

        Args:
            service: AWS service name
            operation: Client method name (describe_cluster, ...)
            **params: Request parameters

        Returns:
            Response dictionary

        Raises:
            ClientError: AWS rejected the request
            BotoCoreError: Request could not be sent or parsed
        """
        client = await self.client(service)
        logger.debug(f"{service}.{operation} {params}")
        return await getattr(client, operation)(**params)

    async def close(self) -> None:
        """Close all open service clients."""
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None
        self._clients = {}
