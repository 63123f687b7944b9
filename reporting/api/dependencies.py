"""API依赖项"""
import logging
from fastapi import HTTPException

logger = logging.getLogger(__name__)

# 全局引擎实例（由app.py在启动时设置）
_engine = None


def set_engine(engine):
    """设置引擎实例"""
    global _engine
    _engine = engine


def get_engine():
    """获取引擎实例的依赖函数"""
    if not _engine:
        logger.error("Report engine not initialized")
        raise HTTPException(status_code=503, detail="Engine not available")
    return _engine
