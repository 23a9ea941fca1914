"""时间工具：数据库统一存储不带时区的 UTC 时间"""
from datetime import datetime, timezone


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    """datetime -> ISO-8601 字符串 (None 保持 None)"""
    return value.isoformat() if value else None


def parse_datetime(value):
    """
    解析 ISO-8601 字符串为不带时区的 UTC datetime
    带时区的时间会先换算成 UTC
    """
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
