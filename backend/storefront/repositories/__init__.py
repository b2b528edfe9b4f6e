from .base import LineItem, SlipRepository
from .sqlalchemy_repo import AMOUNT_EPSILON, SqlAlchemySlipRepository

__all__ = ['LineItem', 'SlipRepository', 'SqlAlchemySlipRepository', 'AMOUNT_EPSILON']
