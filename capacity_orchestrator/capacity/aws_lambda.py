"""
AWS Lambda capacity backend.

Controls the execution environments of a Lambda function running on managed
instances through its function scaling config. The pool id is the function
name; the published version created by the platform is addressed with the
$LATEST.PUBLISHED qualifier.

boto3 is synchronous, so every call is dispatched to a thread pool to keep
the event loop free.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Any, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseCapacityBackend
from ..utils.logger import get_logger
from ..core.exceptions import CapacityBackendError

LATEST_PUBLISHED = "$LATEST.PUBLISHED"


class LambdaCapacityBackend(BaseCapacityBackend):
    """Capacity backend for Lambda functions with manual scaling capacity providers."""

    def __init__(
        self,
        region_name: Optional[str] = None,
        qualifier: str = LATEST_PUBLISHED,
        client=None,
        max_workers: int = 4,
        config: Optional[Dict[str, Any]] = None
    ):
        super().__init__(config)
        self.region_name = region_name
        self.qualifier = qualifier
        self._client = client
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lambda-scaling")
        self.logger = get_logger(__name__)

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client("lambda", region_name=self.region_name)
        return self._client

    async def _call(self, operation: str, pool_id: str, method: str, **kwargs) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()

        def invoke():
            return getattr(self._get_client(), method)(**kwargs)

        try:
            return await loop.run_in_executor(self._executor, invoke)
        except (ClientError, BotoCoreError) as e:
            raise CapacityBackendError(operation, pool_id, str(e)) from e

    async def put_scaling_config(self, pool_id: str, min_units: int, max_units: int) -> Dict[str, Any]:
        response = await self._call(
            "put", pool_id, "put_function_scaling_config",
            FunctionName=pool_id,
            Qualifier=self.qualifier,
            FunctionScalingConfig={
                "MinExecutionEnvironments": min_units,
                "MaxExecutionEnvironments": max_units,
            },
        )

        self.logger.info("Lambda scaling config requested", extra={
            "pool_id": pool_id,
            "min_units": min_units,
            "max_units": max_units
        })

        return {
            "pool_id": pool_id,
            "requested": {"min_units": min_units, "max_units": max_units},
            "response_metadata": response.get("ResponseMetadata", {})
        }

    async def get_applied_scaling_config(self, pool_id: str) -> Tuple[int, int]:
        response = await self._call(
            "get", pool_id, "get_function_scaling_config",
            FunctionName=pool_id,
            Qualifier=self.qualifier,
        )

        # Requested config may still be provisioning; only the applied one is live
        applied = response.get("AppliedFunctionScalingConfig") or {}
        return (
            applied.get("MinExecutionEnvironments") or 0,
            applied.get("MaxExecutionEnvironments") or 0,
        )

    async def close(self) -> None:
        self._executor.shutdown(wait=False)
