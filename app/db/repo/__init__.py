from app.db.repo.quiz_attempts_repo import QuizAttemptsRepo
from app.db.repo.quizzes_repo import QuizzesRepo
from app.db.repo.users_repo import UsersRepo

__all__ = [
    "QuizAttemptsRepo",
    "QuizzesRepo",
    "UsersRepo",
]
