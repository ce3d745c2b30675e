import logging
import uuid
from datetime import timedelta

import mercadopago
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .models import IntegracaoPagamento

logger = logging.getLogger(__name__)

# Status do pagamento no Mercado Pago -> status da cobrança
STATUS_MP_PARA_COBRANCA = {
    'approved': 'pago',
    'cancelled': 'cancelado',
    'refunded': 'cancelado',
    'rejected': 'cancelado',
}


def status_cobranca(status_mp):
    return STATUS_MP_PARA_COBRANCA.get(status_mp, 'pendente')


def obter_token_usuario(usuario):
    integracao = IntegracaoPagamento.objects.filter(
        user=usuario, provedor='mercadopago', status='ativo').first()
    if not integracao or not integracao.access_token:
        return None
    return integracao.access_token


class MercadoPagoService:
    def __init__(self, usuario):
        self.usuario = usuario
        self.access_token = obter_token_usuario(usuario)
        if not self.access_token:
            logger.warning(
                f"Usuário {usuario.pk} sem integração Mercado Pago ativa.")
            raise ValueError("Conecte sua conta Mercado Pago antes de cobrar.")

        self.sdk = mercadopago.SDK(self.access_token)

    def _montar_pagador(self, cobranca):
        cliente = cobranca.cliente
        partes = (cliente.nome or 'Cliente').split()
        return {
            "email": cliente.email or f"cliente-{cliente.id}@lunari.app",
            "first_name": partes[0],
            "last_name": ' '.join(partes[1:]) or 'Cliente',
        }

    def criar_pagamento_pix(self, cobranca):
        if not cobranca or not cobranca.valor or cobranca.valor <= 0:
            logger.warning(
                f"Tentativa de criar PIX sem valor para a cobrança {getattr(cobranca, 'id', None)}.")
            return None

        referencia = f"{self.usuario.pk}|{cobranca.cliente_id}|{cobranca.sessao_id or 'avulso'}"
        payment_data = {
            "transaction_amount": float(cobranca.valor),
            "description": cobranca.descricao or f"Cobrança - {cobranca.cliente.nome}",
            "payment_method_id": "pix",
            "external_reference": referencia,
            "payer": self._montar_pagador(cobranca),
        }

        webhook_url = getattr(settings, 'MERCADO_PAGO_WEBHOOK_URL', '')
        if webhook_url:
            payment_data["notification_url"] = webhook_url

        logger.info(f"Criando PIX Mercado Pago: {referencia}")

        try:
            request_options = mercadopago.config.RequestOptions(
                custom_headers={'X-Idempotency-Key': str(uuid.uuid4())}
            )
            result = self.sdk.payment().create(payment_data, request_options)
        except Exception as e:
            logger.critical(
                f"Exceção na API do Mercado Pago ao criar PIX ({referencia}): {e}", exc_info=True)
            return None

        if result.get("status") != 201:
            logger.error(
                f"Erro ao criar PIX (Status {result.get('status')}) para {referencia}: {result.get('response')}")
            return None

        payment = result["response"]
        pix_data = payment.get("point_of_interaction", {}).get(
            "transaction_data", {})
        qr_code = pix_data.get("qr_code")
        qr_code_base64 = pix_data.get("qr_code_base64")

        if not qr_code:
            logger.critical("API do Mercado Pago não retornou os dados do PIX.")
            return None

        expira_em = parse_datetime(payment.get("date_of_expiration") or '')
        if expira_em is None:
            expira_em = timezone.now() + timedelta(minutes=settings.MINUTOS_EXPIRACAO_PIX)

        logger.info(
            f"PIX criado com sucesso! Payment ID: {payment['id']} ({referencia})")
        return {
            "payment_id": str(payment["id"]),
            "qr_code": qr_code,
            "qr_code_base64": qr_code_base64 or '',
            "expires_at": expira_em,
        }

    def verificar_status_pagamento(self, payment_id_mp):
        if not payment_id_mp:
            return None

        try:
            result = self.sdk.payment().get(int(payment_id_mp))
        except Exception as e:
            logger.critical(
                f"Exceção ao verificar status do Payment ID {payment_id_mp}: {e}", exc_info=True)
            return None

        if result.get("status") != 200:
            logger.error(
                f"Erro ao verificar status (Status {result.get('status')}) do Payment ID {payment_id_mp}: {result}")
            return None

        status = result.get("response", {}).get("status")
        logger.info(f"Status {status} para Payment ID {payment_id_mp}")
        return status
