# -*- coding: utf-8 -*-
"""
@author yumu
@version 1.0.0
"""
from ph_trivia.models.ErrorLog import ErrorLog
from ph_trivia.models.database import db


class CustomException(Exception):
    """
    自定义的异常类的基类
    """

    def __init__(self, message):
        super().__init__(message)
        self.message = message
        self.record_error()

    def record_error(self):
        """
        触发异常自动记录到数据库中
        :return:
        """
        try:
            from flask import has_app_context
            if has_app_context():
                # 数据库异常之后session可能处于失败状态，先回滚再写日志
                db.session.rollback()
                error = ErrorLog(error_source=type(self).__name__, error_event=self.message)
                db.session.add(error)
                db.session.commit()
            else:
                # 没有应用上下文时只打印错误
                print(f"[{type(self).__name__}] {self.message}")
        except Exception as e:
            db.session.rollback()
            print(f"[{type(self).__name__}] {self.message} (无法记录到数据库: {e})")


class ConfigOperationException(CustomException):
    """
    配置文件操作异常类
    """
    pass


class DatabaseOperationException(CustomException):
    """
    数据库操作异常类
    """
    pass


class DecoratorException(CustomException):
    """
    装饰器处理异常类
    """
    pass


class WithdrawalException(CustomException):
    """
    提现异常类
    """