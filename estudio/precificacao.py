# estudio/precificacao.py

"""
Congelamento de regras de precificação.

No momento em que a sessão é registrada, guardamos uma cópia dos dados do
pacote, dos produtos e da tabela de foto extra vigente. Mudanças feitas
depois no catálogo ou nas tabelas não alteram sessões já registradas.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

from django.utils import timezone

logger = logging.getLogger(__name__)

MODELO_REGRAS = 'completo'
CENTAVOS = Decimal('0.01')


def _decimal(valor):
    if valor in (None, ''):
        return Decimal('0.00')
    return Decimal(str(valor))


def _dinheiro(valor):
    return str(_decimal(valor).quantize(CENTAVOS, rounding=ROUND_HALF_UP))


def _agora_iso():
    return timezone.now().isoformat()

# -----------------------------------------------------------------
# LEITURA DAS REGRAS VIGENTES
# -----------------------------------------------------------------


def obter_modelo_precificacao(usuario):
    from .models import ConfiguracaoPrecificacao

    config = ConfiguracaoPrecificacao.objects.filter(user=usuario).first()
    return config.modelo if config else 'fixo'


def obter_tabela_global(usuario):
    from .models import TabelaPrecos

    tabela = TabelaPrecos.objects.filter(
        user=usuario, tipo='global').order_by('-atualizado_em').first()
    return tabela.como_dict() if tabela else None


def obter_tabela_categoria(usuario, categoria):
    """
    Resolve a tabela da categoria pelo ID e, se não achar, pelo nome.
    """
    from .models import TabelaPrecos

    if not categoria:
        return None

    tabelas = TabelaPrecos.objects.filter(user=usuario, tipo='categoria')

    tabela = None
    if str(categoria).isdigit():
        tabela = tabelas.filter(categoria_id=int(categoria)).first()
    if tabela is None:
        tabela = tabelas.filter(categoria__nome=str(categoria)).first()

    if tabela is None:
        logger.warning(
            f"Tabela de categoria não encontrada para: {categoria}")
        return None
    return tabela.como_dict()

# -----------------------------------------------------------------
# CONGELAMENTO
# -----------------------------------------------------------------


def congelar_regras_foto_extra(usuario, categoria=None):
    modelo = obter_modelo_precificacao(usuario)
    regras = {'modelo': modelo}

    if modelo == 'global':
        regras['tabela_global'] = obter_tabela_global(usuario)
    elif modelo == 'categoria' and categoria:
        regras['tabela_categoria'] = obter_tabela_categoria(
            usuario, categoria)
    # No modelo fixo o valor vem do pacote congelado

    return regras


def congelar_produtos(usuario, produtos_incluidos):
    from .models import Produto

    if not produtos_incluidos:
        return []

    congelados = []
    for item in produtos_incluidos:
        produto_id = item.get('produto_id')
        if produto_id:
            produto = Produto.objects.filter(
                id=produto_id, user=usuario).first()
            if produto is None:
                logger.warning(
                    f"Produto {produto_id} não encontrado ao congelar; item ignorado.")
                continue
            congelados.append({
                'id': produto.id,
                'nome': produto.nome,
                'valor_unitario': _dinheiro(produto.preco_venda),
                'quantidade': int(item.get('quantidade') or 1),
                'tipo': item.get('tipo') or 'incluso',
            })
        else:
            # Item manual, congela como veio
            congelados.append({
                'id': item.get('id'),
                'nome': item.get('nome') or 'Produto',
                'valor_unitario': _dinheiro(item.get('valor_unitario') or item.get('valor')),
                'quantidade': int(item.get('quantidade') or 1),
                'tipo': item.get('tipo') or 'manual',
            })

    return congelados


def congelar_pacote(pacote, categoria=None):
    return {
        'id': pacote.id,
        'nome': pacote.nome,
        'valor_base': _dinheiro(pacote.valor_base),
        'valor_foto_extra': _dinheiro(pacote.valor_foto_extra),
        'categoria': pacote.categoria.nome if pacote.categoria else (categoria or ''),
        'categoria_id': pacote.categoria_id,
        'produtos_incluidos': list(pacote.produtos_incluidos or []),
    }


def congelar_regras(usuario, pacote=None, categoria=None):
    if pacote is not None and not categoria and pacote.categoria:
        categoria = pacote.categoria.nome

    regras = {
        'modelo': MODELO_REGRAS,
        'data_congelamento': _agora_iso(),
        'precificacao_foto_extra': congelar_regras_foto_extra(usuario, categoria),
    }

    if pacote is not None:
        regras['pacote'] = congelar_pacote(pacote, categoria)
        regras['produtos'] = congelar_produtos(
            usuario, pacote.produtos_incluidos)
        logger.info(
            f"Regras congeladas para o pacote {pacote.id} (categoria: {categoria or '-'}).")

    return regras


def recongelar_produtos(regras, usuario, novos_produtos):
    if not regras:
        return congelar_regras(usuario)

    atualizadas = dict(regras)
    if novos_produtos is not None:
        atualizadas['produtos'] = congelar_produtos(usuario, novos_produtos)
        atualizadas['data_congelamento'] = _agora_iso()
    return atualizadas


def recongelar_modelo_precificacao(regras, usuario, categoria=None):
    """
    Atualiza apenas a precificação de foto extra com as regras vigentes,
    preservando pacote e produtos congelados.
    """
    atualizadas = dict(regras or {'modelo': MODELO_REGRAS})
    atualizadas['precificacao_foto_extra'] = congelar_regras_foto_extra(
        usuario, categoria)
    atualizadas['data_congelamento'] = _agora_iso()
    return atualizadas

# -----------------------------------------------------------------
# CÁLCULO COM REGRAS CONGELADAS
# -----------------------------------------------------------------


def calcular_valor_por_tabela(quantidade, tabela):
    faixas = (tabela or {}).get('faixas') or []
    if not faixas:
        return Decimal('0.00')

    ordenadas = sorted(faixas, key=lambda faixa: faixa['min'])
    for faixa in ordenadas:
        maximo = faixa.get('max')
        if quantidade >= faixa['min'] and (maximo is None or quantidade <= maximo):
            return _decimal(faixa['valor'])

    # Fora de todas as faixas: vale a última
    return _decimal(ordenadas[-1]['valor'])


def calcular_valor_foto_extra(quantidade, regras):
    """
    Retorna (valor_unitario, valor_total) usando somente as regras
    congeladas da sessão.
    """
    regras = regras or {}
    regras_foto = regras.get('precificacao_foto_extra') or {}
    pacote = regras.get('pacote')
    modelo = regras_foto.get('modelo', 'fixo')

    valor_unitario = Decimal('0.00')

    if modelo == 'fixo':
        if pacote and pacote.get('valor_foto_extra') is not None:
            valor_unitario = _decimal(pacote['valor_foto_extra'])
        else:
            valor_unitario = _decimal(regras_foto.get('valor_fixo'))
    elif modelo in ('global', 'categoria'):
        tabela = regras_foto.get(f"tabela_{modelo}")
        if tabela and tabela.get('usar_valor_fixo_pacote') and pacote:
            valor_unitario = _decimal(pacote.get('valor_foto_extra'))
        elif tabela and tabela.get('faixas'):
            valor_unitario = calcular_valor_por_tabela(quantidade, tabela)
        else:
            logger.warning(
                f"Tabela '{modelo}' ausente ou vazia nas regras congeladas; foto extra sem valor.")

    valor_total = (valor_unitario * quantidade).quantize(
        CENTAVOS, rounding=ROUND_HALF_UP)
    return valor_unitario.quantize(CENTAVOS, rounding=ROUND_HALF_UP), valor_total


def total_produtos_manuais(regras):
    total = Decimal('0.00')
    for produto in (regras or {}).get('produtos') or []:
        if produto.get('tipo') == 'manual':
            total += _decimal(produto.get('valor_unitario')) * \
                int(produto.get('quantidade') or 1)
    return total


def aplicar_regras_na_sessao(sessao):
    """
    Recalcula os valores derivados da sessão a partir das regras
    congeladas. Não consulta o catálogo vigente.
    """
    regras = sessao.regras_congeladas or {}
    pacote = regras.get('pacote')

    if sessao.valor_base_pacote is None:
        sessao.valor_base_pacote = _decimal(
            pacote.get('valor_base') if pacote else None)

    unitario, total_extras = calcular_valor_foto_extra(
        sessao.qtd_fotos_extra or 0, regras)
    sessao.valor_foto_extra = unitario
    sessao.valor_total_foto_extra = total_extras

    sessao.valor_total = (
        _decimal(sessao.valor_base_pacote)
        + total_extras
        + total_produtos_manuais(regras)
        + _decimal(sessao.valor_adicional)
        - _decimal(sessao.desconto)
    ).quantize(CENTAVOS, rounding=ROUND_HALF_UP)
    return sessao

# -----------------------------------------------------------------
# INTEGRIDADE
# -----------------------------------------------------------------


def verificar_integridade(sessoes):
    problemas = []
    for sessao in sessoes:
        regras = sessao.regras_congeladas
        if not regras:
            problemas.append({
                'session_id': sessao.id,
                'problema': 'Sem dados congelados',
                'severidade': 'warning',
            })
        elif not isinstance(regras, dict) or regras.get('modelo') != MODELO_REGRAS:
            problemas.append({
                'session_id': sessao.id,
                'problema': 'Formato de dados congelados desatualizado',
                'severidade': 'info',
            })
    return problemas
