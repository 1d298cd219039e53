# backend/gerador_ean/exceptions.py


class ValidationError(Exception):
    def __init__(self, message="Dados inválidos para geração de EAN."):
        self.message = message
        super().__init__(self.message)


class PersistenceError(Exception):
    def __init__(self, message="Falha ao ler ou salvar o último código da base."):
        self.message = message
        super().__init__(self.message)


class CursorConflictError(Exception):
    def __init__(self, message="A base foi alterada por outra geração simultânea. Tente novamente."):
        self.message = message
        super().__init__(self.message)


class DuplicateRecordError(Exception):
    def __init__(self, message="Registro já existe."):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(Exception):
    def __init__(self, message="E-mail ou senha inválidos."):
        self.message = message
        super().__init__(self.message)


class RecordNotFoundError(Exception):
    def __init__(self, message="Registro não encontrado."):
        self.message = message
        super().__init__(self.message)
