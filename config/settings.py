# config/settings.py
import os
import json
import logging
from typing import Dict, Any
from pathlib import Path
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class ClickHouseConfig:
    """ClickHouse数据库配置"""
    host: str
    port: int
    database: str
    user: str
    password: str


@dataclass
class AppConfig:
    """应用程序配置"""
    log_level: str
    log_file: str
    order_source: str
    fixtures_path: str
    demo_merchant_id: str


@dataclass
class ReportConfig:
    """报表默认参数"""
    default_currency: str
    default_timezone: str
    anomaly_window: int
    anomaly_std_dev: float
    anomaly_min_drop_pct: float


class Settings:
    """配置管理类"""

    def __init__(self, config_path: str = None, setup_logging: bool = True):
        self._config_path = config_path or self._get_config_path()
        self._config = self._load_config()

        # 初始化各配置对象
        self.clickhouse = self._get_clickhouse_config()
        self.app = self._get_app_config()
        self.report = self._get_report_config()

        # 设置日志
        if setup_logging:
            self._setup_logging()

    def _get_config_path(self) -> str:
        """获取配置文件路径"""
        # 优先使用环境变量
        env_path = os.getenv("REPORTING_CONFIG_PATH")
        if env_path and os.path.exists(env_path):
            return env_path

        current_dir = Path(__file__).parent
        project_root = current_dir.parent

        possible_paths = [
            current_dir / "config.json",
            Path.cwd() / "config" / "config.json",
            Path.home() / ".merchant-reports" / "config.json"
        ]

        for path in possible_paths:
            if path.exists():
                return str(path)

        default_path = project_root / "config" / "config.json"
        logger.warning(f"Config file not found, will use defaults. Expected at: {default_path}")
        return str(default_path)

    def _load_config(self) -> Dict[str, Any]:
        """加载配置文件"""
        # 默认配置
        default_config = {
            "CLICKHOUSE_HOST": "localhost",
            "CLICKHOUSE_PORT": 8123,
            "CLICKHOUSE_DATABASE": "orders",
            "CLICKHOUSE_USER": "default",
            "CLICKHOUSE_PASSWORD": "",
            "LOG_LEVEL": "INFO",
            "LOG_FILE": "logs/merchant_reports.log",
            "ORDER_SOURCE": "clickhouse",
            "ORDER_FIXTURES_PATH": "",
            "ORDER_DEMO_MERCHANT_ID": "1",
            "REPORT_DEFAULT_CURRENCY": "AUD",
            "REPORT_DEFAULT_TIMEZONE": "",
            "REPORT_ANOMALY_WINDOW": 7,
            "REPORT_ANOMALY_STD_DEV": 2.0,
            "REPORT_ANOMALY_MIN_DROP_PCT": 15.0
        }

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                file_config = json.load(f)
                # 合并配置
                config = {**default_config, **file_config}
                logger.info(f"Config loaded from {self._config_path}")
                return config
        except FileNotFoundError:
            logger.warning(f"Config file not found at {self._config_path}, using defaults")
            return default_config
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in config file: {e}")
            logger.warning("Using default configuration")
            return default_config

    def _get_config_value(self, key: str, default: Any = None) -> Any:
        """获取配置值，支持环境变量覆盖"""
        # 环境变量优先
        env_value = os.getenv(key)
        if env_value:
            if key.endswith('_PORT') and env_value.isdigit():
                return int(env_value)
            return env_value

        if key in self._config:
            return self._config[key]

        if default is not None:
            return default

        raise ValueError(f"Configuration key '{key}' not found")

    def _get_clickhouse_config(self) -> ClickHouseConfig:
        """获取ClickHouse配置"""
        return ClickHouseConfig(
            host=self._get_config_value("CLICKHOUSE_HOST", "localhost"),
            port=int(self._get_config_value("CLICKHOUSE_PORT", 8123)),
            database=self._get_config_value("CLICKHOUSE_DATABASE", "orders"),
            user=self._get_config_value("CLICKHOUSE_USER", "default"),
            password=self._get_config_value("CLICKHOUSE_PASSWORD", "")
        )

    def _get_app_config(self) -> AppConfig:
        """获取应用配置"""
        return AppConfig(
            log_level=str(self._get_config_value("LOG_LEVEL", "INFO")).upper(),
            log_file=self._get_config_value("LOG_FILE", "logs/merchant_reports.log"),
            order_source=str(self._get_config_value("ORDER_SOURCE", "clickhouse")).lower(),
            fixtures_path=self._get_config_value("ORDER_FIXTURES_PATH", ""),
            demo_merchant_id=str(self._get_config_value("ORDER_DEMO_MERCHANT_ID", "1"))
        )

    def _get_report_config(self) -> ReportConfig:
        """获取报表配置"""
        return ReportConfig(
            default_currency=self._get_config_value("REPORT_DEFAULT_CURRENCY", "AUD"),
            default_timezone=self._get_config_value("REPORT_DEFAULT_TIMEZONE", ""),
            anomaly_window=int(self._get_config_value("REPORT_ANOMALY_WINDOW", 7)),
            anomaly_std_dev=float(self._get_config_value("REPORT_ANOMALY_STD_DEV", 2.0)),
            anomaly_min_drop_pct=float(self._get_config_value("REPORT_ANOMALY_MIN_DROP_PCT", 15.0))
        )

    def _setup_logging(self):
        """设置日志"""
        log_file = Path(self.app.log_file)
        log_dir = log_file.parent

        # 创建日志目录
        log_dir.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, self.app.log_level, logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(log_file, encoding='utf-8'),
                logging.StreamHandler()
            ]
        )

    def use_memory_source(self) -> bool:
        """是否使用内存订单源"""
        return self.app.order_source == "memory"


# 单例模式
_settings = None


def get_settings() -> Settings:
    """获取全局配置实例"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
