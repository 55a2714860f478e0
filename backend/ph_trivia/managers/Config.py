# -*- coding: utf-8 -*-
"""
@author yumu
@version 1.0.0
"""
import json
import os

from ph_trivia.models.typings import ConfigOperationException

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
CONFIG_FILE = os.path.join(ROOT_DIR, "config.json")

SCHEDULER_API_ENABLED = False
SCHEDULER_TIMEZONE = "Asia/Manila"  # 时区，避免时间偏移

# 配置文件里没有写的key使用这里的默认值
DEFAULTS = {
    "database_uri": "sqlite:///" + os.path.join(ROOT_DIR, "ph_trivia.db").replace("\\", "/"),
    "JWT_SECRET_KEY": "dev-secret-change-me",
    "jwt_expire_hours": 12,
    "cors_origins": "*",
    "min_withdrawal_points": 500,
    "points_per_currency_unit": 100,
    "withdrawal_cooldown_minutes": 5,
    "default_referral_bonus": 100,
    "stats_refresh_seconds": 300,
}


class Config:
    _instance = None

    @classmethod
    def _get_instance(cls, config_file=None):
        if cls._instance is None:
            cls._instance = cls.__new__(cls)
            # 测试/部署时可以用环境变量指定其他配置文件
            cls._instance.config_file = config_file or os.environ.get("PH_TRIVIA_CONFIG") or CONFIG_FILE
            cls._instance.config = cls._instance.load_config()
        return cls._instance

    @classmethod
    def reload(cls, config_file=None):
        """丢弃缓存的配置，重新读取配置文件"""
        cls._instance = None
        return cls._get_instance(config_file)

    @classmethod
    def load_config(cls):
        """
        加载配置文件
        :return: 配置文件，json形式
        """
        try:
            instance = cls._instance
            if os.path.exists(instance.config_file):
                with open(instance.config_file, 'r', encoding='utf-8') as file:
                    return json.load(file)
            else:
                return {}
        except Exception as e:
            ConfigOperationException("读取配置文件出错" + ", ".join(str(arg) for arg in e.args))
            return {}

    @classmethod
    def save_config(cls):
        """
        存入配置文件
        :return: None
        """
        try:
            instance = cls._get_instance()
            with open(instance.config_file, 'w', encoding='utf-8') as file:
                json.dump(instance.config, file, indent=2)
        except Exception as e:
            ConfigOperationException("存入配置文件出错" + ", ".join(str(arg) for arg in e.args))

    @classmethod
    def get_value(cls, *args):
        """
        从配置文件中获取配置，针对多级key做了优化
        :param args: 指定的key，可以为多级
        :return: 获取到的值，配置文件里没有时返回DEFAULTS中的默认值
        """
        instance = cls._get_instance()
        try:
            value = instance.config
            for key in args:
                value = value[key]
            return value
        except (KeyError, TypeError) as e:
            if len(args) == 1 and args[0] in DEFAULTS:
                return DEFAULTS[args[0]]
            ConfigOperationException("从配置文件中获取配置出错" + ", ".join(str(arg) for arg in e.args))
            return None

    @classmethod
    def get_int(cls, *args):
        value = cls.get_value(*args)
        try:
            return int(value)
        except (TypeError, ValueError):
            return int(DEFAULTS[args[-1]]) if args[-1] in DEFAULTS else 0

    @classmethod
    def set_value(cls, *args):
        """
        修改配置文件的值，针对多级key做了优化
        :param args: 指定的key，可以为多级，最后一个参数是要修改的值
        :return: None
        """
        try:
            instance = cls._get_instance()
            value = args[-1]
            keys = args[:-1]

            config_section = instance.config
            for key in keys[:-1]:
                if key not in config_section:
                    config_section[key] = {}
                config_section = config_section[key]

            config_section[keys[-1]] = value
            cls.save_config()
        except Exception as e:
            ConfigOperationException("修改配置文件的值出错" + ", ".join(str(arg) for arg in e.args))
