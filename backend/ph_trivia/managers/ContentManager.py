from functools import wraps

from sqlalchemy.exc import SQLAlchemyError

from ph_trivia.managers.AuthManager import AuthManager
from ph_trivia.managers.GameManager import parse_id
from ph_trivia.models.Category import Category
from ph_trivia.models.GameAttempt import GameAttempt
from ph_trivia.models.Question import Question
from ph_trivia.models.QuestionOption import QuestionOption
from ph_trivia.models.database import db
from ph_trivia.models.typings import DatabaseOperationException

DIFFICULTIES = ('easy', 'medium', 'hard')


def admin_only(func):
    """管理端内容操作统一先校验管理员角色（每次调用都查库）"""
    @wraps(func)
    def wrapper(self, auth_context, *args, **kwargs):
        ok, auth_error, auth_msg = AuthManager.instance().verify_admin(auth_context)
        if not ok:
            return False, auth_error, auth_msg
        return func(self, auth_context, *args, **kwargs)
    return wrapper


class ContentManager:
    """题库管理：分类、题目和选项的增删改查"""
    _instance = None

    @classmethod
    def instance(cls):
        """单例模式"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @staticmethod
    def _active_flag(data, default=True):
        """is_active 只接受JSON布尔值，'false'之类的字符串一律拒绝"""
        value = data.get("is_active", default)
        return value if isinstance(value, bool) else None

    @staticmethod
    def _commit(action):
        try:
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            DatabaseOperationException(f"{action}失败：{str(e)}")
            return False

    # ---------------- 分类 ----------------

    def list_categories(self):
        return [c.to_dict() for c in Category.query.order_by(Category.name).all()]

    @admin_only
    def create_category(self, auth_context, data):
        name = data["name"].strip() if isinstance(data.get("name"), str) else ""
        if not name:
            return False, "invalid_input", "Category name is required"
        if Category.query.filter_by(name=name).first():
            return False, "invalid_input", "Category name already exists"
        is_active = self._active_flag(data)
        if is_active is None:
            return False, "invalid_input", "is_active must be true or false"
        category = Category(
            name=name,
            description=data.get("description"),
            icon_emoji=data.get("icon_emoji"),
            color_code=data.get("color_code"),
            is_active=is_active
        )
        db.session.add(category)
        if not self._commit("新增分类"):
            return False, "store_error", "Failed to create category"
        return True, None, category

    @admin_only
    def update_category(self, auth_context, category_id, data):
        category = db.session.get(Category, category_id)
        if category is None:
            return False, "not_found", "Category not found"
        if self._active_flag(data) is None:
            return False, "invalid_input", "is_active must be true or false"
        if "name" in data:
            name = data["name"].strip() if isinstance(data.get("name"), str) else ""
            if not name:
                return False, "invalid_input", "Category name is required"
            duplicate = Category.query.filter(Category.name == name, Category.id != category.id).first()
            if duplicate:
                return False, "invalid_input", "Category name already exists"
            category.name = name
        for field in ("description", "icon_emoji", "color_code"):
            if field in data:
                setattr(category, field, data[field])
        if "is_active" in data:
            category.is_active = data["is_active"]
        if not self._commit("修改分类"):
            return False, "store_error", "Failed to update category"
        return True, None, category

    @admin_only
    def delete_category(self, auth_context, category_id):
        category = db.session.get(Category, category_id)
        if category is None:
            return False, "not_found", "Category not found"
        if Question.query.filter_by(category_id=category.id).first():
            return False, "invalid_input", "Category still has questions"
        db.session.delete(category)
        if not self._commit("删除分类"):
            return False, "store_error", "Failed to delete category"
        return True, None, "Category deleted"

    # ---------------- 题目 ----------------

    @staticmethod
    def _validate_options(options):
        """选项至少两个，且有且只有一个正确答案"""
        if not isinstance(options, list) or len(options) < 2:
            return "A question needs at least two options"
        for option in options:
            if not isinstance(option, dict) or not isinstance(option.get("option_text"), str) \
                    or not option["option_text"].strip():
                return "Every option needs option_text"
        correct = [o for o in options if o.get("is_correct") is True]
        if len(correct) != 1:
            return "A question must have exactly one correct option"
        return None

    @staticmethod
    def _validate_question_fields(data, partial=False):
        if not partial or "question_text" in data:
            if not isinstance(data.get("question_text"), str) or not data["question_text"].strip():
                return "question_text is required"
        if "points" in data or not partial:
            points = data.get("points", 10)
            if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
                return "points must be a positive integer"
        if "difficulty" in data and data["difficulty"] not in DIFFICULTIES:
            return f"difficulty must be one of: {', '.join(DIFFICULTIES)}"
        if ContentManager._active_flag(data) is None:
            return "is_active must be true or false"
        if data.get("category_id") is not None:
            if parse_id(data["category_id"]) is None:
                return "category_id must be a positive integer"
            if db.session.get(Category, parse_id(data["category_id"])) is None:
                return "Category not found"
        return None

    def list_questions(self, category_id=None):
        query = Question.query
        if category_id:
            query = query.filter(Question.category_id == category_id)
        return [q.to_dict(with_answer=True) for q in query.order_by(Question.created_at, Question.id).all()]

    @admin_only
    def create_question(self, auth_context, data):
        error = self._validate_question_fields(data) or self._validate_options(data.get("options"))
        if error:
            return False, "invalid_input", error

        question = Question(
            category_id=parse_id(data.get("category_id")),
            question_text=data["question_text"].strip(),
            difficulty=data.get("difficulty", "medium"),
            points=data.get("points", 10),
            is_active=data.get("is_active", True)
        )
        for index, option in enumerate(data["options"]):
            question.options.append(QuestionOption(
                option_text=option["option_text"].strip(),
                is_correct=option.get("is_correct") is True,
                display_order=option.get("display_order", index)
            ))
        db.session.add(question)
        if not self._commit("新增题目"):
            return False, "store_error", "Failed to create question"
        return True, None, question

    @admin_only
    def update_question(self, auth_context, question_id, data):
        """传了options时整体替换选项"""
        question = db.session.get(Question, question_id)
        if question is None:
            return False, "not_found", "Question not found"
        error = self._validate_question_fields(data, partial=True)
        if not error and "options" in data:
            error = self._validate_options(data["options"])
            if not error and GameAttempt.query.filter_by(question_id=question.id).first():
                error = "Options of a question with recorded attempts cannot be replaced"
        if error:
            return False, "invalid_input", error

        if "question_text" in data:
            question.question_text = data["question_text"].strip()
        if "category_id" in data:
            question.category_id = parse_id(data["category_id"])
        for field in ("difficulty", "points"):
            if field in data:
                setattr(question, field, data[field])
        if "is_active" in data:
            question.is_active = data["is_active"]
        if "options" in data:
            question.options.clear()
            for index, option in enumerate(data["options"]):
                question.options.append(QuestionOption(
                    option_text=option["option_text"].strip(),
                    is_correct=option.get("is_correct") is True,
                    display_order=option.get("display_order", index)
                ))
        if not self._commit("修改题目"):
            return False, "store_error", "Failed to update question"
        return True, None, question

    @admin_only
    def delete_question(self, auth_context, question_id):
        """已经有人答过的题不能删（答题记录不可变），只能下架"""
        question = db.session.get(Question, question_id)
        if question is None:
            return False, "not_found", "Question not found"
        if GameAttempt.query.filter_by(question_id=question.id).first():
            return False, "invalid_input", "Question has recorded attempts; deactivate it instead"
        db.session.delete(question)
        if not self._commit("删除题目"):
            return False, "store_error", "Failed to delete question"
        return True, None, "Question deleted"
