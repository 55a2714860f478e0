import uuid
from datetime import timedelta

import jwt

from ph_trivia.managers.Config import Config
from ph_trivia.models.ErrorLog import ErrorLog
from ph_trivia.models.Withdrawal import Withdrawal
from ph_trivia.models.typings import WithdrawalException
from ph_trivia.models.database import utc_now


def test_sign_up_and_login(client):
    resp = client.post("/auth/sign-up", json={
        "email": "andres@example.com", "password": "secret123",
        "first_name": "Andres", "last_name": "Bonifacio"
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "success"
    assert body["data"]["user"]["name"] == "Andres Bonifacio"
    assert len(body["data"]["referral_code"]) == 8

    resp = client.post("/auth/login", json={"email": "andres@example.com", "password": "secret123"})
    assert resp.status_code == 200
    token = resp.get_json()["data"]["access_token"]

    resp = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.get_json()["data"]["user"]["email"] == "andres@example.com"


def test_bad_credentials(client, player):
    resp = client.post("/auth/login", json={"email": "juan@example.com", "password": "nope"})

    assert resp.status_code == 401
    assert resp.get_json() == {"status": "error", "data": {}, "message": "invalid credentials"}


def test_missing_and_malformed_tokens(client, app):
    assert client.get("/api/points").status_code == 401
    assert client.get("/api/points", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/points", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_expired_token(client, player):
    token = jwt.encode({"user_id": player.id, "role": "player", "exp": utc_now() - timedelta(hours=1)},
                       Config.get_value("JWT_SECRET_KEY"), algorithm="HS256")

    resp = client.get("/api/points", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Token has expired."


def test_logout_blacklists_token(client, player, make_auth_header):
    headers = make_auth_header(player)

    assert client.post("/auth/logout", headers=headers).status_code == 200
    resp = client.get("/api/points", headers=headers)

    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Token is blacklisted."


def test_forged_admin_role_claim_is_ignored(client, player):
    token = jwt.encode({"user_id": player.id, "role": "admin", "exp": utc_now() + timedelta(hours=1)},
                       Config.get_value("JWT_SECRET_KEY"), algorithm="HS256")

    resp = client.get("/api/admin/users", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 403


def test_answer_then_points(client, player, question, make_auth_header):
    headers = make_auth_header(player)
    correct = [o for o in question.options if o.is_correct][0]

    resp = client.post("/api/validate-answer", headers=headers,
                       json={"questionId": question.id, "optionId": correct.id})
    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"isCorrect": True, "points": 100, "correctOptionId": correct.id}

    resp = client.get("/api/points", headers=headers)
    assert resp.get_json()["data"] == {"total_points_earned": 100, "total_points_used": 0, "available_points": 100}

    resp = client.post("/api/validate-answer", headers=headers, json={"questionId": question.id, "optionId": 777})
    assert resp.status_code == 400


def test_questions_endpoint_never_exposes_answers(client, player, question, make_auth_header):
    resp = client.get("/api/questions", headers=make_auth_header(player))

    options = resp.get_json()["data"]["questions"][0]["options"]
    assert all("is_correct" not in o for o in options)


def test_game_session_routes(client, player, make_auth_header):
    headers = make_auth_header(player)

    session = client.post("/api/game/session/start", headers=headers, json={}).get_json()["data"]["session"]
    assert session["is_active"] is True
    assert client.get("/api/game/session", headers=headers).get_json()["data"]["session"]["id"] == session["id"]

    assert client.post("/api/game/session/end", headers=headers, json={"session_id": session["id"]}).status_code == 200
    assert client.get("/api/game/session", headers=headers).get_json()["data"]["session"] is None
    assert client.post("/api/game/session/end", headers=headers, json={"session_id": 999}).status_code == 404


def test_submit_withdrawal(client, player, give_points, make_auth_header):
    give_points(player, 1000)
    headers = make_auth_header(player)

    resp = client.post("/api/withdrawals", headers=headers, json={
        "payment_method": "gcash", "points_deducted": "500", "payment_details": "09171234567"
    })

    assert resp.status_code == 200
    withdrawal = resp.get_json()["data"]["withdrawal"]
    assert withdrawal["status"] == "pending"
    assert withdrawal["amount"] == 5.0
    assert len(client.get("/api/withdrawals", headers=headers).get_json()["data"]["withdrawals"]) == 1


def test_submit_withdrawal_as_form(client, player, give_points, make_auth_header):
    give_points(player, 1000)

    resp = client.post("/api/withdrawals", headers=make_auth_header(player), data={
        "user_id": player.id, "payment_method": "paypal",
        "points_deducted": "600", "payment_details": "juan@example.com"
    })

    assert resp.status_code == 200


def test_withdrawal_rejection_reason_is_returned(client, player, give_points, make_auth_header):
    give_points(player, 300)

    resp = client.post("/api/withdrawals", headers=make_auth_header(player), json={
        "payment_method": "gcash", "points_deducted": 500, "payment_details": "09171234567"
    })

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["data"]["reason"] == "insufficient_balance"
    assert body["message"] == "Insufficient points available (only 300 available)"


def test_cannot_withdraw_for_another_user(client, player, other_player, give_points, make_auth_header):
    give_points(other_player, 1000)

    resp = client.post("/api/withdrawals", headers=make_auth_header(player), json={
        "user_id": other_player.id, "payment_method": "gcash",
        "points_deducted": "500", "payment_details": "09171234567"
    })

    assert resp.status_code == 403
    assert Withdrawal.query.count() == 0


def test_admin_status_route(client, player, admin, give_points, make_auth_header):
    give_points(player, 1000)
    client.post("/api/withdrawals", headers=make_auth_header(player), json={
        "payment_method": "gcash", "points_deducted": "500", "payment_details": "09171234567"
    })
    withdrawal_id = Withdrawal.query.one().id
    url = f"/api/admin/withdrawals/{withdrawal_id}/status"

    assert client.post(url, json={"new_status": "approved"}).status_code == 401
    assert client.post(url, headers=make_auth_header(player), json={"new_status": "approved"}).status_code == 403

    admin_headers = make_auth_header(admin)
    assert client.post(url, headers=admin_headers, json={"new_status": "completed"}).status_code == 409
    assert client.post(url, headers=admin_headers, json={"new_status": "paid"}).status_code == 400
    assert client.post("/api/admin/withdrawals/999/status", headers=admin_headers,
                       json={"new_status": "approved"}).status_code == 404
    assert client.post(url, headers=admin_headers, json={"new_status": "approved"}).status_code == 200
    assert client.post(url, headers=admin_headers, json={"new_status": "completed"}).status_code == 200

    listed = client.get("/api/admin/withdrawals?status=completed", headers=admin_headers).get_json()
    assert listed["data"]["withdrawals"][0]["user_name"] == "Juan Dela Cruz"


def test_admin_user_detail_responses(client, player, admin, make_auth_header):
    admin_headers = make_auth_header(admin)

    assert client.get(f"/api/admin/users/{player.id}").status_code == 401
    assert client.get(f"/api/admin/users/{player.id}", headers=make_auth_header(player)).status_code == 403

    resp = client.get("/api/admin/users/not-a-uuid", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Invalid user ID"

    resp = client.get(f"/api/admin/users/{uuid.uuid4()}", headers=admin_headers)
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "User not found"

    resp = client.get(f"/api/admin/users/{player.id}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["email"] == "juan@example.com"


def test_leaderboard_is_public(client, player, other_player, give_points):
    give_points(player, 300)
    give_points(other_player, 500)

    resp = client.get("/api/leaderboard?limit=1")

    board = resp.get_json()["data"]["leaderboard"]
    assert resp.status_code == 200
    assert board == [{"rank": 1, "user_id": other_player.id, "name": "Maria Clara",
                      "total_points": 500, "total_attempts": 1, "correct_answers": 1}]


def test_admin_stats_and_referrals(client, admin, player, question, give_points, make_auth_header):
    give_points(player, 100)
    headers = make_auth_header(admin)

    stats = client.get("/api/admin/stats", headers=headers).get_json()["data"]
    assert stats["total_attempts"] == 1
    assert stats["total_players"] == 1
    assert stats["overall_accuracy"] == "100.0"

    referrals = client.get("/api/admin/referrals", headers=headers).get_json()["data"]
    assert referrals["referrals"] == []
    assert referrals["stats"]["total_referrals"] == 0


def test_admin_content_routes(client, admin, make_auth_header):
    headers = make_auth_header(admin)

    resp = client.post("/api/admin/categories", headers=headers, json={"name": "Pop Culture"})
    assert resp.status_code == 200
    category_id = resp.get_json()["data"]["category"]["id"]

    resp = client.post("/api/admin/questions", headers=headers, json={
        "category_id": category_id,
        "question_text": "Which island is Boracay part of?",
        "points": 15,
        "options": [{"option_text": "Panay", "is_correct": True}, {"option_text": "Luzon"}]
    })
    assert resp.status_code == 200
    question_id = resp.get_json()["data"]["question"]["id"]

    assert client.delete(f"/api/admin/categories/{category_id}", headers=headers).status_code == 400
    assert client.delete(f"/api/admin/questions/{question_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/admin/categories/{category_id}", headers=headers).status_code == 200


def test_errors_are_logged(app, player):
    WithdrawalException("test failure")

    log = ErrorLog.query.one()
    assert log.error_source == "WithdrawalException"
    assert log.error_event == "test failure"


def test_malformed_answer_ids_are_bad_requests(client, player, question, make_auth_header):
    headers = make_auth_header(player)

    resp = client.post("/api/validate-answer", headers=headers, json={"questionId": {"x": 1}, "optionId": [1]})
    assert resp.status_code == 400
    assert resp.get_json()["status"] == "error"

    correct = [o for o in question.options if o.is_correct][0]
    resp = client.post("/api/validate-answer", headers=headers,
                       json={"questionId": question.id, "optionId": correct.id, "sessionId": {"id": 1}})
    assert resp.status_code == 400
    assert ErrorLog.query.count() == 0


def test_malformed_session_ids_are_bad_requests(client, player, make_auth_header):
    headers = make_auth_header(player)

    assert client.post("/api/game/session/start", headers=headers, json={"category_id": [1]}).status_code == 400
    assert client.post("/api/game/session/end", headers=headers, json={"session_id": {"id": 1}}).status_code == 400
    assert client.post("/api/game/session/end", headers=headers, json={}).status_code == 400
    assert ErrorLog.query.count() == 0


def test_malformed_withdrawal_amount_is_bad_request(client, player, give_points, make_auth_header):
    give_points(player, 1000)

    resp = client.post("/api/withdrawals", headers=make_auth_header(player), json={
        "payment_method": "gcash", "points_deducted": "²", "payment_details": "09171234567"
    })

    assert resp.status_code == 400
    assert resp.get_json()["data"]["reason"] == "invalid_amount"
