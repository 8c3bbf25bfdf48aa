class DashboardError(Exception):
	"""Base de todos os erros tratados pela aplicação."""


class SnapshotParseError(DashboardError):
	"""Backup/snapshot que não está no formato atual nem no legado."""


class NotFoundError(DashboardError, KeyError):
	def __init__(self, kind: str, ident: str):
		super().__init__(f"{kind} '{ident}' não encontrado")
		self.kind = kind
		self.ident = ident

	def __str__(self) -> str:
		return self.args[0]


class DraftStateError(DashboardError):
	"""Operação de edição chamada fora do modo de edição."""


class QuoteValidationError(DashboardError):
	pass


class LogoError(DashboardError):
	pass


class LogoTooLargeError(LogoError):
	pass


class LogoFormatError(LogoError):
	pass


class PdfRenderError(DashboardError):
	pass
