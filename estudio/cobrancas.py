# estudio/cobrancas.py

"""
Regras de cobrança compartilhadas pelas views, pelo webhook do Mercado
Pago e pelo comando de limpeza.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .mercadopago_service import MercadoPagoService, status_cobranca
from .models import Cobranca, IntegracaoPagamento, Transacao
from .pix import gerar_payload_pix, gerar_qrcode_base64, validar_payload_pix

logger = logging.getLogger(__name__)


class CobrancaError(Exception):
    pass


def obter_integracao_pix_manual(usuario):
    integracao = IntegracaoPagamento.objects.filter(
        user=usuario, provedor='pix_manual', status='ativo').first()
    if integracao is None:
        raise CobrancaError("Configure sua chave PIX manual antes de cobrar.")
    return integracao


def _validar_valor(valor):
    valor = Decimal(str(valor)) if valor not in (None, '') else Decimal('0')
    if not valor.is_finite() or valor <= 0:
        raise CobrancaError("valor deve ser maior que zero")
    return valor.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def criar_cobranca_pix_manual(usuario, cliente, valor, sessao=None, descricao=''):
    valor = _validar_valor(valor)
    integracao = obter_integracao_pix_manual(usuario)

    with transaction.atomic():
        cobranca = Cobranca.objects.create(
            user=usuario,
            cliente=cliente,
            sessao=sessao,
            valor=valor,
            descricao=descricao or f"Cobrança PIX - {cliente.nome}",
            tipo_cobranca='pix_manual',
            provedor='pix_manual',
        )

        # O txid do BR Code aceita só [A-Za-z0-9]
        payload = gerar_payload_pix(
            chave_pix=integracao.chave_pix,
            nome_beneficiario=integracao.nome_titular,
            valor=valor,
            cidade=integracao.cidade or settings.PIX_CIDADE_PADRAO,
            identificador=f"LUNARI{cobranca.id}",
            tipo_chave=integracao.tipo_chave or None,
        )
        if not validar_payload_pix(payload):
            logger.critical(
                f"BR Code gerado com CRC inválido para a cobrança {cobranca.id}.")
            raise CobrancaError("Falha ao gerar o código PIX.")

        cobranca.pix_copia_cola = payload
        cobranca.qr_code_base64 = gerar_qrcode_base64(payload)
        cobranca.save(update_fields=['pix_copia_cola', 'qr_code_base64', 'atualizado_em'])

    logger.info(f"Cobrança PIX manual {cobranca.id} gerada (R$ {valor}).")
    return cobranca


def criar_cobranca_pix_mercadopago(usuario, cliente, valor, sessao=None, descricao=''):
    valor = _validar_valor(valor)
    mp = MercadoPagoService(usuario)

    cobranca = Cobranca(
        user=usuario,
        cliente=cliente,
        sessao=sessao,
        valor=valor,
        descricao=descricao or f"Cobrança Pix - {cliente.nome}",
        tipo_cobranca='pix',
        provedor='mercadopago',
    )

    payment_data = mp.criar_pagamento_pix(cobranca)
    if not payment_data:
        raise CobrancaError("Falha ao gerar PIX no Mercado Pago.")

    cobranca.mp_payment_id = payment_data["payment_id"]
    cobranca.pix_copia_cola = payment_data["qr_code"]
    cobranca.qr_code_base64 = payment_data["qr_code_base64"]
    cobranca.mp_expiration_date = payment_data["expires_at"]
    cobranca.save()

    logger.info(
        f"Cobrança {cobranca.id} aguardando pagamento (Payment ID {cobranca.mp_payment_id}).")
    return cobranca


@transaction.atomic
def registrar_pagamento(cobranca, origem):
    """
    Marca a cobrança como paga e, se estiver ligada a uma sessão,
    lança o pagamento no financeiro do cliente.
    """
    # Webhook e polling podem chegar juntos: relê a linha travada
    atual = Cobranca.objects.select_for_update().get(pk=cobranca.pk)
    if atual.status == 'pago':
        cobranca.status = atual.status
        cobranca.data_pagamento = atual.data_pagamento
        return None

    cobranca.status = 'pago'
    cobranca.data_pagamento = timezone.now()
    cobranca.save(update_fields=['status', 'data_pagamento', 'atualizado_em'])

    if not cobranca.sessao_id:
        return None

    referencia = f" - MP #{cobranca.mp_payment_id}" if cobranca.mp_payment_id else ''
    transacao = Transacao.objects.create(
        user=cobranca.user,
        cliente=cobranca.cliente,
        sessao=cobranca.sessao,
        valor=cobranca.valor,
        tipo='pagamento',
        data_transacao=timezone.localdate(),
        descricao=f"Pagamento via {cobranca.tipo_cobranca.upper()}{referencia} ({origem})",
    )
    logger.info(
        f"Transação {transacao.id} registrada para a cobrança {cobranca.id} via {origem}.")
    return transacao


def cancelar_cobranca(cobranca):
    if cobranca.status == 'pago':
        raise CobrancaError("Cobrança já paga não pode ser cancelada.")
    cobranca.status = 'cancelado'
    cobranca.save(update_fields=['status', 'atualizado_em'])
    return cobranca


def aplicar_status_mercadopago(cobranca, status_mp, origem):
    """
    Aplica o status retornado pela API. Retorna o novo status da
    cobrança ou None quando nada mudou.
    """
    novo_status = status_cobranca(status_mp)

    if novo_status == 'pago':
        registrar_pagamento(cobranca, origem)
        return 'pago'
    if novo_status == 'cancelado' and cobranca.status == 'pendente':
        cobranca.status = 'cancelado'
        cobranca.save(update_fields=['status', 'atualizado_em'])
        logger.warning(
            f"Cobrança {cobranca.id} cancelada (Status MP: {status_mp}).")
        return 'cancelado'
    return None
