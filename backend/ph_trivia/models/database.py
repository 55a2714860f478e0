# -*- coding: utf-8 -*-
"""
@author yumu
@version 1.0.0
"""
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

"""
本项目使用的是flask_sqlalchemy，为了保证在整个flask上下文环境中db唯一，特设此文件生成唯一db，在其他文件中要使用db时均从此文件导入，
在main文件中要对db进行初始化
"""
db = SQLAlchemy()


def utc_now():
    """统一的UTC时间（naive），MariaDB和SQLite的DateTime列都不保存时区"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
