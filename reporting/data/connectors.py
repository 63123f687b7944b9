# reporting/data/connectors.py
import logging
import threading
from typing import List, Dict, Any, Optional

logger = logging.getLogger(__name__)


class ClickHouseConnector:
    """ClickHouse数据库连接器"""

    def __init__(self, settings=None):
        if settings is None:
            from config.settings import get_settings
            settings = get_settings().clickhouse
        self.settings = settings
        self._client = None
        self._lock = threading.Lock()

    @property
    def client(self):
        """获取客户端实例（懒加载，连接失败时下次调用重试）"""
        if self._client is not None:
            return self._client

        with self._lock:
            if self._client is None:
                try:
                    import clickhouse_connect
                    # 当前窗口与前一窗口会并发查询，不能共用同一个session
                    self._client = clickhouse_connect.get_client(
                        host=self.settings.host,
                        port=self.settings.port,
                        username=self.settings.user,
                        password=self.settings.password,
                        database=self.settings.database,
                        autogenerate_session_id=False
                    )
                    logger.info(f"Connected to ClickHouse: {self.settings.host}:{self.settings.port}")
                except Exception as e:
                    logger.error(f"Failed to connect to ClickHouse: {e}")
                    raise ConnectionError(f"Cannot connect to ClickHouse: {e}") from e

        return self._client

    def query_rows(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """执行参数化查询，按列名返回行"""
        try:
            logger.debug(f"Executing query: {query[:100]}...")
            result = self.client.query(query, parameters=params or {})
            return list(result.named_results())
        except Exception as e:
            logger.error(f"Query execution failed: {e}")
            raise

    def close(self):
        """关闭连接"""
        with self._lock:
            if self._client:
                try:
                    self._client.close()
                finally:
                    self._client = None
                    logger.info("ClickHouse connection closed")
