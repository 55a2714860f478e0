"""Pytest configuration and shared fixtures for all tests."""

import json
import os
import tempfile

# 在导入main之前指定测试配置：内存SQLite + 固定JWT密钥
_config_dir = tempfile.mkdtemp(prefix="ph_trivia_test_")
_config_path = os.path.join(_config_dir, "config.json")
with open(_config_path, "w", encoding="utf-8") as _f:
    json.dump({
        "database_uri": "sqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret-key-for-ph-trivia-tests",
        "min_withdrawal_points": 500,
        "points_per_currency_unit": 100,
        "withdrawal_cooldown_minutes": 5
    }, _f)
os.environ["PH_TRIVIA_CONFIG"] = _config_path

import pytest
from werkzeug.security import generate_password_hash

from main import app as flask_app
from ph_trivia.managers.AuthManager import AuthManager, AuthorizationContext
from ph_trivia.models.Category import Category
from ph_trivia.models.GameAttempt import GameAttempt
from ph_trivia.models.Profile import Profile
from ph_trivia.models.Question import Question
from ph_trivia.models.QuestionOption import QuestionOption
from ph_trivia.models.database import db

PASSWORD = "secret123"


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _make_profile(email, role="player", first_name=None, last_name=None, referral_code=None, bonus=0):
    profile = Profile(
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
        referral_code=referral_code,
        referral_bonus_points=bonus
    )
    db.session.add(profile)
    db.session.commit()
    return profile


@pytest.fixture
def player(app):
    return _make_profile("juan@example.com", first_name="Juan", last_name="Dela Cruz", referral_code="JUAN0001")


@pytest.fixture
def other_player(app):
    return _make_profile("maria@example.com", first_name="Maria", last_name="Clara", referral_code="MARIA001")


@pytest.fixture
def admin(app):
    return _make_profile("admin@example.com", role="admin", first_name="Admin", referral_code="ADMIN001")


@pytest.fixture
def admin_context(admin):
    return AuthorizationContext(admin.id, admin.role)


@pytest.fixture
def player_context(player):
    return AuthorizationContext(player.id, player.role)


@pytest.fixture
def question(app):
    category = Category(name="Philippine History", icon_emoji="PH", color_code="#0038a8")
    db.session.add(category)
    db.session.flush()
    q = Question(category_id=category.id, question_text="Who wrote Noli Me Tangere?", points=100)
    q.options.append(QuestionOption(option_text="Jose Rizal", is_correct=True, display_order=0))
    q.options.append(QuestionOption(option_text="Andres Bonifacio", is_correct=False, display_order=1))
    db.session.add(q)
    db.session.commit()
    return q


@pytest.fixture
def give_points(question):
    """直接写入答题记录，模拟玩家累计得分"""
    correct_option = [o for o in question.options if o.is_correct][0]

    def _give(profile, points):
        db.session.add(GameAttempt(
            user_id=profile.id,
            question_id=question.id,
            selected_option_id=correct_option.id,
            is_correct=True,
            points_earned=points
        ))
        db.session.commit()

    return _give


def auth_header(profile):
    token = AuthManager.instance().issue_token(profile)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_auth_header(app):
    return auth_header
