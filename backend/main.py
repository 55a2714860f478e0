# -*- coding: utf-8 -*-
from flask import Flask, request, jsonify
from flask_cors import cross_origin
from functools import wraps
import traceback
from flask_apscheduler import APScheduler
from sqlalchemy.exc import SQLAlchemyError

from datetime import datetime, timezone
from ph_trivia.models.database import db
from ph_trivia.managers.Config import Config, SCHEDULER_API_ENABLED, SCHEDULER_TIMEZONE
from ph_trivia.models.typings import *  # 包含 DecoratorException/ConfigOperationException
from ph_trivia.managers.AuthManager import AuthManager, AuthError
from ph_trivia.managers.UserManager import UserManager
from ph_trivia.managers.PointManager import PointManager
from ph_trivia.managers.WithdrawalManager import WithdrawalManager, StatusUpdateError
from ph_trivia.managers.GameManager import GameManager, parse_id
from ph_trivia.managers.RankingManager import RankingManager
from ph_trivia.managers.ReferralManager import ReferralManager
from ph_trivia.managers.ContentManager import ContentManager
from ph_trivia.services.DaemonTask import DaemonTask

app = Flask(__name__)

app.config['SQLALCHEMY_DATABASE_URI'] = Config.get_value("database_uri")
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['CORS_ORIGINS'] = Config.get_value("cors_origins")
app.config['SCHEDULER_API_ENABLED'] = SCHEDULER_API_ENABLED
app.config['SCHEDULER_TIMEZONE'] = SCHEDULER_TIMEZONE

db.init_app(app)

with app.app_context():
    db.create_all()

scheduler = APScheduler()

# 失败类型 -> HTTP状态码
ERROR_STATUS_CODES = {
    AuthError.UNAUTHORIZED: 401,
    AuthError.ACCESS_DENIED: 403,
    "not_found": 404,
    "invalid_input": 400,
    "invalid_option": 400,
    StatusUpdateError.INVALID_STATUS: 400,
    StatusUpdateError.INVALID_TRANSITION: 409,
    StatusUpdateError.CONFLICT: 409,
    "already_rewarded": 409,
    "invalid_bonus": 400,
    "store_error": 500,
}


def api_response(success, data=None, message="", status_code=200):
    return jsonify({
        "status": "success" if success else "error",
        "data": data if data is not None else {},
        "message": message
    }), status_code


def error_response(error_type, message):
    return api_response(False, {}, message, ERROR_STATUS_CODES.get(error_type, 400))


def request_json():
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def token_required(f):
    """
    鉴权，并从jwt和profiles表解析出本次请求的AuthorizationContext
    :param f:
    :return: AuthorizationContext
    """
    try:
        @wraps(f)
        def decorator(*args, **kwargs):
            ok, context, message = AuthManager.instance().resolve_context(request.headers.get('Authorization'))
            if not ok:
                return error_response(context, message)
            return f(context, *args, **kwargs)

        return decorator
    except Exception as e:
        raise DecoratorException("token_required装饰器出错：" + ", ".join(str(arg) for arg in e.args))


def admin_required(f):
    """
    在token_required基础上再从数据库确认管理员角色
    """
    try:
        @wraps(f)
        @token_required
        def decorator(auth_context, *args, **kwargs):
            ok, error_type, message = AuthManager.instance().verify_admin(auth_context)
            if not ok:
                return error_response(error_type, message)
            return f(auth_context, *args, **kwargs)

        return decorator
    except Exception as e:
        raise DecoratorException("admin_required装饰器出错：" + ", ".join(str(arg) for arg in e.args))


@app.errorhandler(SQLAlchemyError)
def handle_database_error(e):
    db.session.rollback()
    DatabaseOperationException(f"{request.method} {request.path} 数据库操作失败：{str(e)}")
    return api_response(False, {}, "Database error. Please try again.", 500)


@app.route('/', methods=['GET', 'POST'])
def index():
    return "ok"


# ============ 账号相关接口 ============

@app.route('/auth/sign-up', methods=['POST'])
@cross_origin()
def sign_up():
    data = request_json()
    success, result = UserManager.register(
        email=data.get('email'),
        password=data.get('password'),
        first_name=data.get('first_name'),
        last_name=data.get('last_name'),
        referral_code=data.get('referral_code')
    )
    if not success:
        return api_response(False, {}, result, 400)
    return api_response(True, {
        "user": result.to_dict(),
        "referral_code": result.referral_code
    }, "Sign up successful.")


@app.route('/auth/login', methods=['POST'])
@cross_origin()
def login():
    data = request_json()
    success, token, result = UserManager.login(data.get('email'), data.get('password'))
    if not success:
        return api_response(False, {}, result, 401)
    return api_response(True, {
        "access_token": token,
        "user": result.to_dict()
    }, "Login successful.")


@app.route('/auth/logout', methods=['GET', 'POST'])
@cross_origin()
@token_required
def logout(auth_context):
    AuthManager.instance().blacklist_token(auth_context.token, auth_context.user_id)
    return api_response(True, {}, "User logged out successfully")


@app.route('/api/me', methods=['GET'])
@cross_origin()
@token_required
def get_me(auth_context):
    profile = UserManager.get_profile(auth_context.user_id)
    return api_response(True, {"user": profile.to_dict()}, "Query successful")


# ============ 答题相关接口 ============

@app.route('/api/categories', methods=['GET'])
@cross_origin()
def get_categories():
    return api_response(True, {"categories": GameManager.instance().get_categories()}, "Query successful")


@app.route('/api/questions', methods=['GET'])
@cross_origin()
@token_required
def get_questions(auth_context):
    category_id = request.args.get('category_id', type=int)
    questions = GameManager.instance().get_questions(category_id)
    return api_response(True, {"questions": questions}, "Query successful")


@app.route('/api/game/session', methods=['GET'])
@cross_origin()
@token_required
def get_active_session(auth_context):
    session = GameManager.instance().get_active_session(auth_context.user_id)
    return api_response(True, {"session": session.to_dict() if session else None}, "Query successful")


@app.route('/api/game/session/start', methods=['POST'])
@cross_origin()
@token_required
def start_game_session(auth_context):
    data = request_json()
    category_id = data.get('category_id')
    if category_id:
        category_id = parse_id(category_id)
        if category_id is None:
            return error_response("invalid_input", "category_id must be a positive integer")
    session = GameManager.instance().start_session(auth_context.user_id, category_id or None)
    return api_response(True, {"session": session.to_dict()}, "Game session started")


@app.route('/api/game/session/end', methods=['POST'])
@cross_origin()
@token_required
def end_game_session(auth_context):
    data = request_json()
    session_id = parse_id(data.get('session_id'))
    if session_id is None:
        return error_response("invalid_input", "session_id must be a positive integer")
    success, msg = GameManager.instance().end_session(auth_context.user_id, session_id)
    if not success:
        return error_response("not_found", msg)
    return api_response(True, {}, msg)


@app.route('/api/validate-answer', methods=['POST'])
@cross_origin()
@token_required
def validate_answer(auth_context):
    """判题接口：答对得题目分值，答错0分，结果写入答题记录"""
    data = request_json()
    success, error_type, result = GameManager.instance().validate_answer(
        auth_context.user_id,
        data.get('questionId'),
        data.get('optionId'),
        data.get('sessionId')
    )
    if not success:
        return error_response(error_type, result)
    return api_response(True, {
        "isCorrect": result["is_correct"],
        "points": result["points"],
        "correctOptionId": result["correct_option_id"]
    }, "Answer checked")


@app.route('/api/player/stats', methods=['GET'])
@cross_origin()
@token_required
def get_player_stats(auth_context):
    game_manager = GameManager.instance()
    return api_response(True, {
        "stats": game_manager.get_player_stats(auth_context.user_id),
        "top_categories": game_manager.get_top_categories(auth_context.user_id)
    }, "Query successful")


@app.route('/api/leaderboard', methods=['GET'])
@cross_origin()
def get_leaderboard():
    """排行榜（无需鉴权），读取失败返回空列表"""
    limit = request.args.get('limit', default=10, type=int)
    if not limit or limit <= 0:
        limit = 10
    leaderboard = RankingManager.instance().get_leaderboard(limit=min(limit, 100))
    return api_response(True, {"leaderboard": leaderboard}, "Query successful")


# ============ 积分/提现相关接口 ============

@app.route('/api/points', methods=['GET'])
@cross_origin()
@token_required
def get_points(auth_context):
    balance = PointManager.instance().get_balance(auth_context.user_id)
    return api_response(True, {
        "total_points_earned": balance["earned"],
        "total_points_used": balance["used"],
        "available_points": balance["available"]
    }, "Query successful")


@app.route('/api/withdrawals', methods=['GET'])
@cross_origin()
@token_required
def get_my_withdrawals(auth_context):
    withdrawals = WithdrawalManager.instance().get_user_withdrawals(auth_context.user_id)
    return api_response(True, {"withdrawals": withdrawals}, "Query successful")


@app.route('/api/withdrawals', methods=['POST'])
@cross_origin()
@token_required
def submit_withdrawal(auth_context):
    """提交提现申请，user_id以token为准"""
    data = request_json() or request.form.to_dict()
    user_id = data.get('user_id')
    if user_id and user_id != auth_context.user_id:
        return error_response(AuthError.ACCESS_DENIED, "You can only withdraw from your own account")

    success, reason, result = WithdrawalManager.instance().submit_withdrawal(
        auth_context.user_id,
        data.get('payment_method'),
        data.get('points_deducted'),
        data.get('payment_details')
    )
    if not success:
        status_code = 500 if reason == "store_error" else 400
        return api_response(False, {"reason": reason}, result, status_code)
    return api_response(True, {"withdrawal": result.to_dict()}, "Withdrawal request submitted")


@app.route('/api/referrals', methods=['GET'])
@cross_origin()
@token_required
def get_my_referrals(auth_context):
    summary = ReferralManager.instance().get_referral_summary(auth_context.user_id)
    return api_response(True, summary or {}, "Query successful")


# ============ 管理端接口 ============

@app.route('/api/admin/withdrawals', methods=['GET'])
@cross_origin()
@admin_required
def admin_get_withdrawals(auth_context):
    withdrawals = WithdrawalManager.instance().list_withdrawals(request.args.get('status'))
    return api_response(True, {"withdrawals": withdrawals}, "Query successful")


@app.route('/api/admin/withdrawals/<int:withdrawal_id>/status', methods=['POST'])
@cross_origin()
@token_required
def admin_update_withdrawal_status(auth_context, withdrawal_id):
    """修改提现状态，管理员角色在WithdrawalManager里重新校验"""
    data = request_json()
    success, error_type, msg = WithdrawalManager.instance().update_withdrawal_status(
        auth_context, withdrawal_id, data.get('new_status'), data.get('reason'))
    if not success:
        return error_response(error_type, msg)
    return api_response(True, {}, msg)


@app.route('/api/admin/users', methods=['GET'])
@cross_origin()
@admin_required
def admin_get_users(auth_context):
    return api_response(True, {"users": UserManager.list_players()}, "Query successful")


@app.route('/api/admin/users/<user_id>', methods=['GET'])
@cross_origin()
@admin_required
def admin_get_user_detail(auth_context, user_id):
    success, error_type, result = UserManager.get_user_detail(user_id)
    if not success:
        return error_response(error_type, result)
    return api_response(True, result, "Query successful")


@app.route('/api/admin/users/<user_id>', methods=['PUT'])
@cross_origin()
@token_required
def admin_update_user(auth_context, user_id):
    success, error_type, result = UserManager.update_profile(auth_context, user_id, request_json())
    if not success:
        return error_response(error_type, result)
    return api_response(True, {"user": result.to_dict()}, "User updated")


@app.route('/api/admin/stats', methods=['GET'])
@cross_origin()
@admin_required
def admin_get_stats(auth_context):
    return api_response(True, RankingManager.instance().get_admin_stats(), "Query successful")


@app.route('/api/admin/referrals', methods=['GET'])
@cross_origin()
@admin_required
def admin_get_referrals(auth_context):
    referral_manager = ReferralManager.instance()
    return api_response(True, {
        "referrals": referral_manager.list_referrals(),
        "stats": referral_manager.get_referral_stats()
    }, "Query successful")


@app.route('/api/admin/referrals/<int:referral_id>/reward', methods=['POST'])
@cross_origin()
@token_required
def admin_reward_referral(auth_context, referral_id):
    data = request_json()
    success, error_type, msg = ReferralManager.instance().reward_referral(
        auth_context, referral_id, data.get('bonus_points'))
    if not success:
        return error_response(error_type, msg)
    return api_response(True, {}, msg)


@app.route('/api/admin/categories', methods=['GET'])
@cross_origin()
@admin_required
def admin_get_categories(auth_context):
    return api_response(True, {"categories": ContentManager.instance().list_categories()}, "Query successful")


@app.route('/api/admin/categories', methods=['POST'])
@cross_origin()
@token_required
def admin_create_category(auth_context):
    success, error_type, result = ContentManager.instance().create_category(auth_context, request_json())
    if not success:
        return error_response(error_type, result)
    return api_response(True, {"category": result.to_dict()}, "Category created")


@app.route('/api/admin/categories/<int:category_id>', methods=['PUT'])
@cross_origin()
@token_required
def admin_update_category(auth_context, category_id):
    success, error_type, result = ContentManager.instance().update_category(
        auth_context, category_id, request_json())
    if not success:
        return error_response(error_type, result)
    return api_response(True, {"category": result.to_dict()}, "Category updated")


@app.route('/api/admin/categories/<int:category_id>', methods=['DELETE'])
@cross_origin()
@token_required
def admin_delete_category(auth_context, category_id):
    success, error_type, msg = ContentManager.instance().delete_category(auth_context, category_id)
    if not success:
        return error_response(error_type, msg)
    return api_response(True, {}, msg)


@app.route('/api/admin/questions', methods=['GET'])
@cross_origin()
@admin_required
def admin_get_questions(auth_context):
    category_id = request.args.get('category_id', type=int)
    return api_response(True, {"questions": ContentManager.instance().list_questions(category_id)},
                        "Query successful")


@app.route('/api/admin/questions', methods=['POST'])
@cross_origin()
@token_required
def admin_create_question(auth_context):
    success, error_type, result = ContentManager.instance().create_question(auth_context, request_json())
    if not success:
        return error_response(error_type, result)
    return api_response(True, {"question": result.to_dict(with_answer=True)}, "Question created")


@app.route('/api/admin/questions/<int:question_id>', methods=['PUT'])
@cross_origin()
@token_required
def admin_update_question(auth_context, question_id):
    success, error_type, result = ContentManager.instance().update_question(
        auth_context, question_id, request_json())
    if not success:
        return error_response(error_type, result)
    return api_response(True, {"question": result.to_dict(with_answer=True)}, "Question updated")


@app.route('/api/admin/questions/<int:question_id>', methods=['DELETE'])
@cross_origin()
@token_required
def admin_delete_question(auth_context, question_id):
    success, error_type, msg = ContentManager.instance().delete_question(auth_context, question_id)
    if not success:
        return error_response(error_type, msg)
    return api_response(True, {}, msg)


if __name__ == '__main__':
    try:
        print("【启动】刷新积分汇总...")
        DaemonTask.start_daemon_task(app)

        scheduler.init_app(app)
        scheduler.add_job(
            id='refresh_withdrawal_stats',
            func=DaemonTask.refresh_withdrawal_stats,
            args=[app],
            trigger='interval',
            seconds=Config.get_int("stats_refresh_seconds"),
            max_instances=1
        )
        scheduler.add_job(
            id='close_idle_sessions',
            func=DaemonTask.close_idle_sessions,
            args=[app],
            trigger='interval',
            minutes=30
        )
        scheduler.start()

        app.run(
            host='0.0.0.0',
            port=5000,
            debug=False,  # 生产环境关闭debug
            threaded=True
        )
    except Exception as e:
        error_stack = traceback.format_exc()
        with open("error.log", "a", encoding="utf-8") as f:
            f.write(f"[{datetime.now(timezone.utc)}] {error_stack}\n")
