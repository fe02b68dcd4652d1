"""User-facing WhatsApp reply texts (pt-BR)."""

from __future__ import annotations

from app.schemas.receipt import CanonicalRecord

NOT_AVAILABLE = "N/D"

SUBMITTED = "Lançamento enviado ao financeiro com sucesso! ✅"
SUBMIT_FAILED = (
    "Não consegui enviar o lançamento ao financeiro. ❌\n"
    "Por favor, envie o comprovante novamente."
)
NOTHING_PENDING = "Nenhum lançamento pendente encontrado."
ACKNOWLEDGED = "Recebido!"
UNSUPPORTED_MESSAGE = "Envie texto, imagem ou PDF."
UNSUPPORTED_ATTACHMENT = "Esse tipo de arquivo não é suportado. Envie uma imagem ou um PDF do comprovante."
MEDIA_UNAVAILABLE = "Não consegui baixar o arquivo. Por favor, envie novamente."
EXTRACTION_FAILED = "Não consegui ler o comprovante agora. Por favor, tente novamente em alguns minutos."
REPLACED_NOTICE = "O comprovante anterior, ainda não confirmado, foi substituído por este."
GENERIC_ERROR = "Ocorreu um erro ao processar a sua mensagem. Por favor, tente novamente."
RATE_LIMITED = "Você enviou muitas mensagens em pouco tempo. Aguarde um minuto e tente novamente."


def _show(value: str) -> str:
    return value or NOT_AVAILABLE


def receipt_summary(record: CanonicalRecord, *, confirmation_token: str, replaced: bool = False) -> str:
    lines = [
        "Recebi o seu comprovante! ✅",
        "",
        f"Fornecedor: {_show(record.supplier)}",
        f"CNPJ: {_show(record.tax_id)}",
        f"Data: {_show(record.document_date)}",
        f"Valor: {_show(record.amount)}",
        f"Descrição: {_show(record.description)}",
        "",
    ]
    if replaced:
        lines.extend([REPLACED_NOTICE, ""])
    lines.append(f"Se estiver tudo certo, responda *{confirmation_token}* para lançar no financeiro.")
    return "\n".join(lines)
