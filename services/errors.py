"""
사이니지 서비스 예외 모음.

라우터는 이 예외들을 그대로 올려 보내고, main.py 에 등록된 핸들러가
HTTP 상태 코드와 {"detail": 메시지} 형태로 바꿔 준다.
"""


class SignageError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# [입력 오류] 400
class ValidationFailed(SignageError):
    status_code = 400
    default_message = "Invalid request"


# [인증 오류] 401 - 토큰의 어느 부분이 틀렸는지는 알려주지 않음
class InvalidToken(SignageError):
    status_code = 401
    default_message = "Invalid or expired token. Please scan the QR code again."


class NotAuthenticated(SignageError):
    status_code = 401
    default_message = "Authentication required"


class AccessDenied(SignageError):
    status_code = 403
    default_message = "Access denied for this instance"


# [정책 거부] 중복 제출, 비활성 인스턴스
class AlreadySubmitted(SignageError):
    status_code = 403
    default_message = "You have already submitted. Each person can only submit once."


class InstanceNotFound(SignageError):
    status_code = 404
    default_message = "Signage not found"


class InstanceInactive(SignageError):
    status_code = 400
    default_message = "Signage is not active"


# [DB 장애] 503
class DatastoreUnavailable(SignageError):
    status_code = 503
    default_message = "Database unavailable"
