# estudio/pix.py

"""
Gerador do BR Code PIX estático (padrão EMV QRCPS do Banco Central).

O payload é uma sequência de campos TLV (ID + TAMANHO + VALOR) numa ordem
fixa, terminada pelo CRC16 calculado sobre tudo o que vem antes, incluindo
o cabeçalho "6304" do próprio campo de CRC.
"""

import base64
import logging
import re
import unicodedata
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from io import BytesIO
from typing import Optional

import qrcode

logger = logging.getLogger(__name__)

GUI_PIX = 'br.gov.bcb.pix'
CODIGO_MOEDA_BRL = '986'
CODIGO_PAIS = 'BR'
CATEGORIA_COMERCIANTE = '0000'
CIDADE_PADRAO = 'SAO PAULO'
IDENTIFICADOR_PADRAO = '***'

MAX_NOME = 25
MAX_CIDADE = 15
MAX_IDENTIFICADOR = 25

# Teto usual de payload para leitores de QR baseados em EMV
TAMANHO_MAXIMO_PAYLOAD = 512

CABECALHO_CRC = '6304'

TIPOS_CHAVE = ('cpf', 'cnpj', 'telefone', 'email', 'aleatoria')

# Chave aleatória (EVP): UUID com hífens
CHAVE_ALEATORIA = re.compile(
    r'[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}')


def _montar_tabela_crc(polinomio=0x1021):
    tabela = []
    for byte in range(256):
        crc = byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ polinomio) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
        tabela.append(crc)
    return tuple(tabela)


TABELA_CRC16 = _montar_tabela_crc()


@dataclass(frozen=True)
class DadosPix:
    chave_pix: str
    nome_beneficiario: str
    valor: Optional[Decimal] = None
    cidade: str = CIDADE_PADRAO
    identificador: str = IDENTIFICADOR_PADRAO
    tipo_chave: Optional[str] = None


def crc16_ccitt(texto: str) -> str:
    """
    CRC16/CCITT-FALSE (init 0xFFFF, polinômio 0x1021, sem reflexão e sem
    XOR final). Retorna 4 dígitos hexadecimais maiúsculos.
    """
    crc = 0xFFFF
    for byte in texto.encode('utf-8'):
        crc = ((crc << 8) & 0xFFFF) ^ TABELA_CRC16[((crc >> 8) ^ byte) & 0xFF]
    return f"{crc:04X}"


def campo_emv(id_campo: str, valor: str) -> str:
    tamanho = len(valor.encode('utf-8'))
    return f"{id_campo}{tamanho:02d}{valor}"


def remover_acentos(texto: str) -> str:
    decomposto = unicodedata.normalize('NFD', texto or '')
    return ''.join(c for c in decomposto if not unicodedata.combining(c))


def _normalizar_texto(texto, limite):
    return remover_acentos(texto).upper()[:limite]


def normalizar_chave_pix(chave: str, tipo_chave: Optional[str] = None) -> str:
    """
    Sem tipo informado, uma chave aleatória (UUID) passa intacta e uma
    chave que começa com dígito é tratada como telefone: ficam só os
    dígitos e, se sobrarem 10 ou 11, entra o +55.
    Com o tipo da chave (cadastrado na integração PIX manual) a
    normalização segue o tipo, o que evita confundir CPF com telefone.
    """
    chave = (chave or '').strip()

    if tipo_chave in ('cpf', 'cnpj'):
        return re.sub(r'\D', '', chave)
    if tipo_chave == 'telefone':
        digitos = re.sub(r'\D', '', chave)
        if digitos.startswith('55') and len(digitos) in (12, 13):
            return f"+{digitos}"
        return f"+55{digitos}"
    if tipo_chave == 'email':
        return chave.lower()
    if tipo_chave == 'aleatoria':
        return chave

    if CHAVE_ALEATORIA.fullmatch(chave):
        return chave
    if chave[:1].isdigit():
        digitos = re.sub(r'\D', '', chave)
        if len(digitos) in (10, 11):
            return f"+55{digitos}"
        return digitos
    return chave


def formatar_valor(valor) -> Optional[str]:
    """Retorna o valor com duas casas ou None quando ausente / <= 0."""
    if valor is None:
        return None
    valor = Decimal(str(valor))
    if not valor.is_finite() or valor <= 0:
        return None
    return str(valor.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def gerar_payload(dados: DadosPix) -> str:
    chave = normalizar_chave_pix(dados.chave_pix, dados.tipo_chave)
    nome = _normalizar_texto(dados.nome_beneficiario, MAX_NOME)
    cidade = _normalizar_texto(dados.cidade or CIDADE_PADRAO, MAX_CIDADE)
    identificador = (dados.identificador or IDENTIFICADOR_PADRAO)[:MAX_IDENTIFICADOR]
    valor = formatar_valor(dados.valor)

    conta_comerciante = campo_emv('00', GUI_PIX) + campo_emv('01', chave)

    campos = [
        campo_emv('00', '01'),
        campo_emv('26', conta_comerciante),
        campo_emv('52', CATEGORIA_COMERCIANTE),
        campo_emv('53', CODIGO_MOEDA_BRL),
    ]
    if valor is not None:
        campos.append(campo_emv('54', valor))
    campos += [
        campo_emv('58', CODIGO_PAIS),
        campo_emv('59', nome),
        campo_emv('60', cidade),
        campo_emv('62', campo_emv('05', identificador)),
        CABECALHO_CRC,
    ]

    parcial = ''.join(campos)
    payload = parcial + crc16_ccitt(parcial)

    if len(payload) > TAMANHO_MAXIMO_PAYLOAD:
        logger.warning(
            f"Payload PIX com {len(payload)} caracteres excede o teto de {TAMANHO_MAXIMO_PAYLOAD}.")

    return payload


def gerar_payload_pix(chave_pix, nome_beneficiario, valor=None, cidade=CIDADE_PADRAO,
                      identificador=IDENTIFICADOR_PADRAO, tipo_chave=None):
    return gerar_payload(DadosPix(
        chave_pix=chave_pix,
        nome_beneficiario=nome_beneficiario,
        valor=valor,
        cidade=cidade,
        identificador=identificador,
        tipo_chave=tipo_chave,
    ))


def ler_campos_emv(payload: str) -> dict:
    """
    Decodifica os campos TLV de primeiro nível. Lança ValueError se o
    texto terminar no meio de um campo.
    """
    campos = {}
    posicao = 0
    dados = payload.encode('utf-8')
    while posicao < len(dados):
        cabecalho = dados[posicao:posicao + 4]
        if len(cabecalho) < 4 or not cabecalho[2:].isdigit():
            raise ValueError(f"Campo EMV inválido na posição {posicao}.")
        tamanho = int(cabecalho[2:])
        valor = dados[posicao + 4:posicao + 4 + tamanho]
        if len(valor) < tamanho:
            raise ValueError(f"Campo {cabecalho[:2].decode()} truncado.")
        campos[cabecalho[:2].decode()] = valor.decode('utf-8')
        posicao += 4 + tamanho
    return campos


def validar_payload_pix(payload: str) -> bool:
    if not payload or len(payload) < 8:
        return False
    parcial, crc = payload[:-4], payload[-4:]
    if not parcial.endswith(CABECALHO_CRC):
        return False
    if not re.fullmatch(r'[0-9A-F]{4}', crc):
        return False
    return crc16_ccitt(parcial) == crc


def gerar_qrcode_base64(payload: str) -> str:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    imagem = qr.make_image(fill_color='black', back_color='white')
    buffer = BytesIO()
    imagem.save(buffer, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')
