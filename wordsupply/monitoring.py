"""
Monitoring module for the word supply engine.
Handles logging configuration and optional CloudWatch metrics.
"""

import os
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError


def configure_logging(level_name: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """Configure root logging (level from LOG_LEVEL, file handler under LOG_DIR)."""
    level_name = (level_name or os.getenv('LOG_LEVEL', 'INFO')).strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    handlers = [logging.StreamHandler()]
    logs_dir = Path(log_dir or os.getenv('LOG_DIR', 'logs'))
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(logs_dir / 'wordsupply.log'))
    except OSError as e:
        logging.getLogger(__name__).warning(f"File logging disabled ({logs_dir}): {e}")
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
    logging.getLogger('wordsupply').setLevel(level)
    # Keep AWS SDK chatter out of DEBUG output
    logging.getLogger('botocore').setLevel(max(level, logging.INFO))
    logging.getLogger('boto3').setLevel(max(level, logging.INFO))


logger = logging.getLogger(__name__)


class CacheMonitor:
    def __init__(self, environment: str = 'Development', enabled: bool = False,
                 region: Optional[str] = None):
        self.environment = environment
        self.enabled = enabled
        self.region = region or os.getenv('AWS_REGION', 'us-east-1')
        self.namespace = f"WordSupply/{environment}"
        self._cloudwatch = None

    @property
    def cloudwatch(self):
        if self._cloudwatch is None:
            self._cloudwatch = boto3.client('cloudwatch', region_name=self.region)
        return self._cloudwatch

    def put_metric(self, metric_name: str, value: float, unit: str,
                   dimensions: Optional[Dict[str, str]] = None) -> None:
        """Publish one datapoint under the cache namespace; no-op when disabled."""
        if not self.enabled:
            return
        try:
            metric_data = {
                'MetricName': metric_name,
                'Value': value,
                'Unit': unit,
                'Timestamp': datetime.now(timezone.utc)
            }
            if dimensions:
                metric_data['Dimensions'] = [
                    {'Name': k, 'Value': v} for k, v in dimensions.items()
                ]
            self.cloudwatch.put_metric_data(
                Namespace=self.namespace,
                MetricData=[metric_data]
            )
            logger.debug(f"Published metric {metric_name}: {value} {unit}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to publish metric {metric_name}: {str(e)}")

    def track_cache_hit(self, partition: str) -> None:
        self.put_metric('CacheHit', 1, 'Count', {'Partition': partition})

    def track_cache_miss(self, partition: str) -> None:
        self.put_metric('CacheMiss', 1, 'Count', {'Partition': partition})

    def track_backfill_latency(self, partition: str, latency_ms: float) -> None:
        self.put_metric('BackfillLatency', latency_ms, 'Milliseconds', {'Partition': partition})

    def track_shortage(self, missing: int) -> None:
        """Track how many words a request came up short."""
        self.put_metric('WordShortage', missing, 'Count')

    def track_error(self, error_type: str) -> None:
        self.put_metric('Errors', 1, 'Count', {'ErrorType': error_type})
