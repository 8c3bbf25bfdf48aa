import logging
from datetime import datetime
from typing import List, Optional

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from models.app_data import Material, Quote
from services.board import find_material, format_date
from services.branding import logo_image
from services.errors import LogoFormatError, PdfRenderError
from services.pricing import format_brl, item_description

logger = logging.getLogger(__name__)

COMPANY_NAME = "ACM e Letras Comunicação Visual"

PAYMENT_TERMS = [
	"Condições de pagamento: cartão de crédito em até 10x sem juros.",
	"50% sinal e o restante na entrega.",
	"À vista com 10% de desconto.",
]

INSTALLATION_NOTE = (
	"A Instalação de nossos produtos depende das condições climáticas. É necessário que o clima esteja "
	"estável para que a instalação ocorra. Em caso de mau tempo, reagendaremos a instalação conforme a "
	"disponibilidade da nossa agenda."
)

WARRANTY_NOTES = [
	"Todos os produtos fabricados e instalados pela ACM e Letras, possuem garantia de 01 ano, exceto os "
	"componentes elétricos como Led, refletores, fontes, lâmpadas etc... estes possuem garantia de 3 meses.",
	"A ACM e Letras declara nula e sem efeito de garantia, caso os materiais descritos nesta proposta venham "
	"a sofrer danos causados por agentes da natureza (sol, raios, inundações, desabamento, incêndio, "
	"vendavais etc...) e outros acidentes, vandalismo, colisão, manuseio de forma incorreta ou por pessoas "
	"não autorizadas.",
	"Importante lembrar que para manter a segurança e vida útil das estruturas metálicas, o cliente deverá "
	"fazer a manutenção preventiva anualmente.",
]

EXCLUSIONS = [
	"Esta proposta não contempla documentações ou projetos técnicos para regulamentação junto à prefeitura "
	"ou demais órgãos competentes.",
	"O fornecimento de Munck ou plataforma de elevação não está incluso neste orçamento.",
	"A ACM e Letras Comunicação Visual se isenta de qualquer responsabilidade em relação.",
]

FOOTER_LINES = [
	"CNPJ: 60.007.991/0001-66",
	"Endereço: Avenida Santana, 1199",
	"Email: acmletras@gmail.com",
]


def pdf_filename(quote: Quote) -> str:
	return f"orcamento-{quote.quote_number}.pdf"


def _safe_text(text: str) -> str:
	# Garantir compatibilidade latin-1 (core fonts) sem quebrar o PDF
	if text is None:
		return ""
	return text.encode("latin-1", "replace").decode("latin-1")


def items_summary(quote: Quote, materials: List[Material]) -> str:
	parts = [item_description(it, find_material(materials, it.material_id)) for it in quote.items]
	return ", ".join(p for p in parts if p)


def _header(pdf: FPDF, quote: Quote, logo: Optional[str]) -> None:
	top = pdf.get_y()
	if logo:
		try:
			pdf.image(logo_image(logo), x=150, y=top, w=45)
		except LogoFormatError as exc:
			logger.warning("Logo ignorado no PDF de %s: %s", quote.quote_number, exc)
	pdf.set_font("Helvetica", "B", 16)
	pdf.cell(130, 10, _safe_text(f"Orçamento #{quote.quote_number}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.set_font("Helvetica", "", 10)
	pdf.cell(130, 6, _safe_text(f"Data: {format_date(quote.created_at)}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.cell(130, 6, _safe_text(COMPANY_NAME), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.set_y(max(pdf.get_y(), top + 25))
	pdf.ln(4)


def _client_block(pdf: FPDF, quote: Quote) -> None:
	pdf.set_font("Helvetica", "B", 12)
	pdf.cell(0, 7, _safe_text("Cliente"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.set_font("Helvetica", "", 11)
	pdf.cell(0, 6, _safe_text(f"Empresa: {quote.company_name}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.cell(0, 6, _safe_text(f"A/C: {quote.contact_person}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	if quote.phone:
		pdf.cell(0, 6, _safe_text(f"Telefone: {quote.phone}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.ln(4)


def _paragraphs(pdf: FPDF, title: str, lines: List[str], bullet: bool = False) -> None:
	pdf.set_font("Helvetica", "B", 11)
	pdf.cell(0, 6, _safe_text(title), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.set_font("Helvetica", "", 9)
	for line in lines:
		text = f"- {line}" if bullet else line
		pdf.multi_cell(0, 5, _safe_text(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
		pdf.ln(1)
	pdf.ln(2)


def _build_pdf(quote: Quote, materials: List[Material], logo: Optional[str]) -> FPDF:
	pdf = FPDF(orientation="P", unit="mm", format="A4")
	pdf.set_auto_page_break(auto=True, margin=15)
	pdf.add_page()

	_header(pdf, quote, logo)
	_client_block(pdf, quote)

	# Resumo dos itens
	pdf.set_font("Helvetica", "B", 12)
	pdf.cell(0, 7, _safe_text("Descrição"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.set_font("Helvetica", "", 11)
	pdf.multi_cell(0, 6, _safe_text(items_summary(quote, materials) or "Nenhum item informado."), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.ln(3)

	# Total
	pdf.set_font("Helvetica", "B", 13)
	pdf.cell(0, 8, _safe_text(f"Valor total: {format_brl(quote.total)}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.set_font("Helvetica", "", 10)
	for line in PAYMENT_TERMS:
		pdf.cell(0, 5, _safe_text(line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.ln(4)

	_paragraphs(pdf, "Instalação", [INSTALLATION_NOTE])
	_paragraphs(pdf, "Garantia", WARRANTY_NOTES)
	_paragraphs(pdf, "Observações", EXCLUSIONS, bullet=True)

	# Rodapé
	pdf.set_font("Helvetica", "", 8)
	for line in FOOTER_LINES:
		pdf.cell(0, 4, _safe_text(line), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	pdf.cell(0, 4, _safe_text(f"Gerado em {datetime.now().strftime('%d/%m/%Y %H:%M')}"), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
	return pdf


def render_quote_pdf(quote: Quote, materials: List[Material], logo: Optional[str] = None) -> bytes:
	try:
		pdf = _build_pdf(quote, materials, logo)
		return bytes(pdf.output())
	except Exception as exc:
		logger.exception("Erro ao gerar PDF do orçamento %s", quote.quote_number)
		raise PdfRenderError("Ocorreu um problema ao gerar o arquivo PDF.") from exc
