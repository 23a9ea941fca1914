"""单号分配服务：按年份递增的原子计数器"""
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from app.extensions import db
from app.exceptions import SequenceConflict
from app.models.trade import NumberSequence
from app.utils.clock import utcnow

ORDER_SEQUENCE = 'order'
INVOICE_SEQUENCE = 'invoice'


class SequenceService:
    """
    计数器自增在数据库端用一条 UPDATE value = value + 1 完成，
    不采用 "统计已有订单数 + 1" 的做法，避免并发结算时单号重复
    """

    @staticmethod
    def _increment(name, year):
        result = db.session.execute(
            update(NumberSequence)
            .where(NumberSequence.name == name, NumberSequence.year == year)
            .values(value=NumberSequence.value + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def next_value(name, year):
        """分配下一个序号 (在调用方事务内执行，随事务一起提交/回滚)"""
        if SequenceService._increment(name, year) == 0:
            try:
                with db.session.begin_nested():
                    db.session.add(NumberSequence(name=name, year=year, value=1))
                return 1
            except IntegrityError:
                # 并发请求刚好同时创建了当年的计数器，重新自增
                if SequenceService._increment(name, year) == 0:
                    raise SequenceConflict(f"Could not allocate {name} sequence for {year}")

        return db.session.execute(
            select(NumberSequence.value)
            .where(NumberSequence.name == name, NumberSequence.year == year)
        ).scalar_one()

    @staticmethod
    def format_number(prefix, year, seq):
        """生成单号 (BD-2026-001)，超过 999 时自然增长位数"""
        return f"{prefix}-{year}-{seq:03d}"

    @staticmethod
    def allocate(name, prefix, now=None):
        now = now or utcnow()
        seq = SequenceService.next_value(name, now.year)
        return SequenceService.format_number(prefix, now.year, seq)
