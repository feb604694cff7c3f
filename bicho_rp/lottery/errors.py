"""Errors raised by the ledger operations.

Every error carries a human-readable ``message`` suitable for showing to the
player; the web gateway forwards it untouched.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger errors."""

    default_message = "Operação inválida."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__


class InvalidAmount(LedgerError):
    default_message = "Valor inválido."


class InsufficientBalance(LedgerError):
    default_message = "Saldo insuficiente."


class UnknownAnimal(LedgerError):
    default_message = "Animal desconhecido."


class UserNotFound(LedgerError):
    default_message = "Usuário não autorizado. Contate um Administrador."


class InvalidPassword(LedgerError):
    default_message = "Senha incorreta."


class DuplicateUsername(LedgerError):
    default_message = "Este usuário já existe."


class InvalidUserSpec(LedgerError):
    default_message = "Dados de usuário inválidos."


class MalformedSnapshot(LedgerError):
    default_message = "Dados de sincronização inválidos."


class RegistryInvariantViolation(LedgerError):
    default_message = "Tabela de animais inválida."


class NotAuthenticated(LedgerError):
    default_message = "Faça login para continuar."


class AdminRequired(LedgerError):
    default_message = "Acesso restrito a administradores."
