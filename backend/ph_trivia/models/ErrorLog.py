# -*- coding: utf-8 -*-
"""
@author yumu
@version 1.0.0
"""
from ph_trivia.models.database import db, utc_now


class ErrorLog(db.Model):
    """
    错误日志模型
    """
    __tablename__ = 'error_log'
    error_log_id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    error_source = db.Column(db.String(64), nullable=True, comment='异常类型')
    error_event = db.Column(db.Text, nullable=True)
    error_time = db.Column(db.DateTime, default=utc_now)
