from typing import List, Optional


class StackPipeException(Exception):
    """
    Базовое исключение stackpipe.

    description — человекочитаемое описание, его печатает CLI.
    logs        — шаги, накопленные до момента ошибки.
    """

    def __init__(
        self,
        *args,
        description: str = "Something happened...",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(description, *args)
        self.description = description
        self.logs: List[str] = logs or []

    def __str__(self) -> str:
        return self.description
