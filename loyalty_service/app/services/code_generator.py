from __future__ import annotations

import secrets
import uuid


# 헷갈리기 쉬운 0, O, 1, I, L 을 제외한 31개 문자
CODE_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
CODE_LENGTH = 8


class CodeGenerator:
    """내부 식별자(UUID)와 사람이 입력하는 짧은 코드를 생성한다.

    기존 코드와의 중복 검사는 하지 않는다. 충돌은 저장 시점에 DuplicateCodeError 로 드러나고
    PointCodeService 가 새 코드로 재시도한다.
    """

    def __init__(self, alphabet: str = CODE_ALPHABET, length: int = CODE_LENGTH) -> None:
        self._alphabet = alphabet
        self._length = length

    def new_internal_id(self) -> str:
        return str(uuid.uuid4())

    def new_user_code(self) -> str:
        return "".join(secrets.choice(self._alphabet) for _ in range(self._length))
