# estudio/views.py

import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from functools import wraps

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt

from . import precificacao
from .cobrancas import (
    CobrancaError, aplicar_status_mercadopago, cancelar_cobranca,
    criar_cobranca_pix_manual, criar_cobranca_pix_mercadopago, registrar_pagamento
)
from .mercadopago_service import MercadoPagoService
from .models import Cliente, Cobranca, Pacote, Sessao

logger = logging.getLogger(__name__)


def login_obrigatorio(func):
    @wraps(func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'status': 'error', 'message': 'Autenticação necessária.'}, status=403)
        return func(request, *args, **kwargs)
    return wrapper


def _metodo_invalido():
    return JsonResponse({'status': 'error', 'message': 'Método inválido.'}, status=405)


def _ler_json(request):
    if not request.body:
        return {}
    data = json.loads(request.body)
    if not isinstance(data, dict):
        raise ValueError("o corpo da requisição deve ser um objeto JSON")
    return data


def _resolver_cliente_e_sessao(usuario, data):
    """
    Resolve cliente e sessão do corpo da requisição. Sem clienteId, usa o
    cliente da sessão informada.
    """
    sessao = None
    sessao_id = data.get('sessionId')
    if sessao_id:
        sessao = Sessao.objects.get(id=sessao_id, user=usuario)

    cliente_id = data.get('clienteId')
    if not cliente_id and sessao is not None:
        cliente_id = sessao.cliente_id

    if not cliente_id:
        raise CobrancaError('clienteId é obrigatório')

    cliente = Cliente.objects.get(id=cliente_id, user=usuario)
    return cliente, sessao

# ---
# Cobranças
# ---


@login_obrigatorio
def api_cobrancas(request):
    if request.method != 'GET':
        return _metodo_invalido()

    cobrancas = Cobranca.objects.filter(user=request.user)
    sessao_id = request.GET.get('session_id')
    cliente_id = request.GET.get('cliente_id')

    if sessao_id:
        cobrancas = cobrancas.filter(sessao_id=sessao_id)
    elif cliente_id:
        cobrancas = cobrancas.filter(cliente_id=cliente_id)
    else:
        return JsonResponse({'status': 'error', 'message': 'Informe session_id ou cliente_id.'}, status=400)

    return JsonResponse({'status': 'success', 'cobrancas': [c.como_dict() for c in cobrancas]})


def _criar_cobranca(request, criar):
    if request.method != 'POST':
        return _metodo_invalido()

    try:
        data = _ler_json(request)
        cliente, sessao = _resolver_cliente_e_sessao(request.user, data)
        cobranca = criar(
            request.user,
            cliente,
            data.get('valor'),
            sessao=sessao,
            descricao=data.get('descricao') or '',
        )
        return JsonResponse({'status': 'success', 'cobranca': cobranca.como_dict()}, status=201)

    except json.JSONDecodeError:
        return JsonResponse({'status': 'error', 'message': 'JSON inválido.'}, status=400)
    except (Cliente.DoesNotExist, Sessao.DoesNotExist):
        return JsonResponse({'status': 'error', 'message': 'Cliente ou sessão não encontrados.'}, status=404)
    except (CobrancaError, ValueError, InvalidOperation) as e:
        return JsonResponse({'status': 'error', 'message': str(e)}, status=400)
    except Exception as e:
        logger.error(f"Erro inesperado ao criar cobrança: {e}", exc_info=True)
        return JsonResponse({'status': 'error', 'message': 'Erro interno.'}, status=500)


@csrf_exempt
@login_obrigatorio
def api_criar_cobranca_pix_manual(request):
    return _criar_cobranca(request, criar_cobranca_pix_manual)


@csrf_exempt
@login_obrigatorio
def api_criar_cobranca_pix(request):
    return _criar_cobranca(request, criar_cobranca_pix_mercadopago)


@csrf_exempt
@login_obrigatorio
def api_cancelar_cobranca(request, cobranca_id):
    if request.method != 'POST':
        return _metodo_invalido()

    cobranca = get_object_or_404(Cobranca, id=cobranca_id, user=request.user)
    try:
        cancelar_cobranca(cobranca)
    except CobrancaError as e:
        return JsonResponse({'status': 'error', 'message': str(e)}, status=400)
    return JsonResponse({'status': 'success', 'message': 'Cobrança cancelada.'})


@csrf_exempt
@login_obrigatorio
def api_confirmar_cobranca(request, cobranca_id):
    """
    Confirmação manual de recebimento (PIX manual não tem retorno
    automático do banco).
    """
    if request.method != 'POST':
        return _metodo_invalido()

    cobranca = get_object_or_404(Cobranca, id=cobranca_id, user=request.user)
    if cobranca.status == 'cancelado':
        return JsonResponse({'status': 'error', 'message': 'Cobrança cancelada não pode ser confirmada.'}, status=400)

    transacao = registrar_pagamento(cobranca, 'confirmação manual')
    return JsonResponse({
        'status': 'success',
        'cobranca': cobranca.como_dict(),
        'transacao_id': transacao.id if transacao else None,
    })


@login_obrigatorio
def api_status_cobranca(request, cobranca_id):
    """
    Usado pelo frontend (polling). Cobranças do Mercado Pago ainda
    pendentes são conferidas na API.
    """
    cobranca = get_object_or_404(Cobranca, id=cobranca_id, user=request.user)

    if cobranca.status == 'pendente' and cobranca.mp_payment_id:
        try:
            mp = MercadoPagoService(request.user)
            status_real = mp.verificar_status_pagamento(cobranca.mp_payment_id)
            if status_real:
                aplicar_status_mercadopago(cobranca, status_real, 'verificação manual')
        except ValueError as e:
            logger.warning(f"Status da cobrança {cobranca.id} não verificado: {e}")

    return JsonResponse({'status': cobranca.status, 'cobranca_id': cobranca.id})


@csrf_exempt
def mercadopago_webhook(request):
    """
    Recebe notificações de pagamento do Mercado Pago.
    """
    if request.method != 'POST':
        return _metodo_invalido()

    try:
        data = json.loads(request.body)
        logger.info(f"Webhook Mercado Pago recebido: {data}")

        if data.get("type") == "payment" or "payment" in (data.get("action") or ""):
            payment_id_mp = (data.get("data") or {}).get("id")
            if not payment_id_mp:
                return JsonResponse({'status': 'ignorado', 'message': 'Sem ID de pagamento.'}, status=200)
            payment_id_mp = str(payment_id_mp)

            cobranca = Cobranca.objects.filter(mp_payment_id=payment_id_mp).first()
            if cobranca is None:
                logger.warning(
                    f"Webhook para Payment ID {payment_id_mp} não encontrado no banco de dados.")
                return JsonResponse({'status': 'nao_encontrado'}, status=200)

            if cobranca.status != 'pendente':
                logger.info(
                    f"Cobrança {cobranca.id} já processada ({cobranca.status}). Ignorando webhook.")
                return JsonResponse({'status': 'ja_processado'}, status=200)

            try:
                mp = MercadoPagoService(cobranca.user)
            except ValueError:
                logger.warning(
                    f"Sem token Mercado Pago para a cobrança {cobranca.id}; webhook ignorado.")
                return JsonResponse({'status': 'ignorado'}, status=200)

            status_real = mp.verificar_status_pagamento(payment_id_mp)
            novo_status = aplicar_status_mercadopago(cobranca, status_real, 'webhook')
            if novo_status is None:
                logger.info(
                    f"Status '{status_real}' recebido para a cobrança {cobranca.id}. Nenhuma ação tomada.")

    except json.JSONDecodeError:
        logger.error("Erro ao decodificar JSON do webhook.")
        return JsonResponse({'status': 'error', 'message': 'JSON inválido.'}, status=400)
    except Exception as e:
        logger.error(f"Erro inesperado no webhook: {e}", exc_info=True)
        return JsonResponse({'status': 'error', 'message': 'Erro interno.'}, status=500)

    return JsonResponse({"status": "recebido"}, status=200)

# ---
# Sessões e regras congeladas
# ---


@csrf_exempt
@login_obrigatorio
def api_criar_sessao(request):
    if request.method != 'POST':
        return _metodo_invalido()

    try:
        data = _ler_json(request)
        cliente = Cliente.objects.get(id=data['clienteId'], user=request.user)

        pacote = None
        if data.get('pacoteId'):
            pacote = Pacote.objects.get(id=data['pacoteId'], user=request.user)

        qtd_fotos_extra = int(data.get('qtdFotosExtra') or 0)
        if qtd_fotos_extra < 0:
            raise ValueError('qtdFotosExtra não pode ser negativa')

        sessao = Sessao(
            user=request.user,
            cliente=cliente,
            pacote=pacote,
            categoria=data.get('categoria') or '',
            data_sessao=datetime.strptime(data['data'], '%Y-%m-%d').date(),
            hora_sessao=datetime.strptime(data['hora'], '%H:%M').time(),
            descricao=data.get('descricao') or '',
            qtd_fotos_extra=qtd_fotos_extra,
            valor_adicional=Decimal(str(data.get('valorAdicional') or 0)),
            desconto=Decimal(str(data.get('desconto') or 0)),
        )
        # O save() congela as regras e calcula os totais
        sessao.save()

        logger.info(f"Sessão {sessao.id} criada para o cliente {cliente.id}.")
        return JsonResponse({'status': 'success', 'sessao': _resumo_sessao(sessao)}, status=201)

    except json.JSONDecodeError:
        return JsonResponse({'status': 'error', 'message': 'JSON inválido.'}, status=400)
    except (Cliente.DoesNotExist, Pacote.DoesNotExist):
        return JsonResponse({'status': 'error', 'message': 'Cliente ou pacote não encontrados.'}, status=404)
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        return JsonResponse({'status': 'error', 'message': f'Dados inválidos: {e}'}, status=400)


def _resumo_sessao(sessao):
    return {
        'id': sessao.id,
        'cliente_id': sessao.cliente_id,
        'categoria': sessao.categoria,
        'status': sessao.status,
        'qtd_fotos_extra': sessao.qtd_fotos_extra,
        'valor_base_pacote': str(sessao.valor_base_pacote),
        'valor_foto_extra': str(sessao.valor_foto_extra),
        'valor_total_foto_extra': str(sessao.valor_total_foto_extra),
        'valor_adicional': str(sessao.valor_adicional),
        'desconto': str(sessao.desconto),
        'valor_total': str(sessao.valor_total),
        'valor_pago': str(sessao.valor_pago),
        'saldo_devedor': str(sessao.saldo_devedor),
        'data_congelamento': (sessao.regras_congeladas or {}).get('data_congelamento'),
    }


@login_obrigatorio
def api_resumo_sessao(request, sessao_id):
    sessao = get_object_or_404(Sessao, id=sessao_id, user=request.user)
    return JsonResponse({'status': 'success', 'sessao': _resumo_sessao(sessao)})


@csrf_exempt
@login_obrigatorio
def api_fotos_extras_sessao(request, sessao_id):
    if request.method != 'POST':
        return _metodo_invalido()

    sessao = get_object_or_404(Sessao, id=sessao_id, user=request.user)
    try:
        data = _ler_json(request)
        quantidade = int(data.get('quantidade', 0))
        if quantidade < 0:
            raise ValueError('quantidade não pode ser negativa')
    except json.JSONDecodeError:
        return JsonResponse({'status': 'error', 'message': 'JSON inválido.'}, status=400)
    except (TypeError, ValueError) as e:
        return JsonResponse({'status': 'error', 'message': f'Dados inválidos: {e}'}, status=400)

    sessao.qtd_fotos_extra = quantidade
    sessao.save()
    return JsonResponse({'status': 'success', 'sessao': _resumo_sessao(sessao)})


@csrf_exempt
@login_obrigatorio
def api_recongelar_sessao(request, sessao_id):
    """
    Recongela apenas uma parte das regras: 'produtos' (com a nova lista
    enviada) ou 'precificacao' (modelo de foto extra vigente).
    """
    if request.method != 'POST':
        return _metodo_invalido()

    sessao = get_object_or_404(Sessao, id=sessao_id, user=request.user)
    try:
        data = _ler_json(request)
    except json.JSONDecodeError:
        return JsonResponse({'status': 'error', 'message': 'JSON inválido.'}, status=400)
    except ValueError as e:
        return JsonResponse({'status': 'error', 'message': str(e)}, status=400)

    alvo = data.get('alvo')
    if alvo == 'produtos':
        sessao.regras_congeladas = precificacao.recongelar_produtos(
            sessao.regras_congeladas, request.user, data.get('produtos') or [])
    elif alvo == 'precificacao':
        sessao.regras_congeladas = precificacao.recongelar_modelo_precificacao(
            sessao.regras_congeladas, request.user, sessao.categoria)
    else:
        return JsonResponse({'status': 'error', 'message': "alvo deve ser 'produtos' ou 'precificacao'."}, status=400)

    sessao.save()
    logger.info(f"Regras da sessão {sessao.id} recongeladas ({alvo}).")
    return JsonResponse({'status': 'success', 'sessao': _resumo_sessao(sessao)})
