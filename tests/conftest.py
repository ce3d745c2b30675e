"""Fixtures compartilhadas dos testes.

usuario           : fotógrafo dono dos dados
cliente           : cliente do fotógrafo
categoria, pacote : catálogo mínimo (pacote de R$ 500 com foto extra a R$ 20)
integracao_pix    : PIX manual configurado com chave e-mail
integracao_mp     : integração Mercado Pago ativa
api               : test client já autenticado como `usuario`
sdk_mp            : SDK do Mercado Pago substituído por um MagicMock
"""

from datetime import date, time
from decimal import Decimal
from unittest import mock

import pytest

from estudio.models import Categoria, Cliente, IntegracaoPagamento, Pacote, Sessao


@pytest.fixture
def usuario(django_user_model):
    return django_user_model.objects.create_user(username='fotografa', password='senha-forte-123')


@pytest.fixture
def cliente(usuario):
    return Cliente.objects.create(
        user=usuario, nome='Maria Souza', email='maria@example.com', telefone='11999998888')


@pytest.fixture
def categoria(usuario):
    return Categoria.objects.create(user=usuario, nome='Gestante')


@pytest.fixture
def pacote(usuario, categoria):
    return Pacote.objects.create(
        user=usuario,
        categoria=categoria,
        nome='Ensaio Gestante',
        valor_base=Decimal('500.00'),
        valor_foto_extra=Decimal('20.00'),
    )


@pytest.fixture
def sessao(usuario, cliente, pacote):
    return Sessao.objects.create(
        user=usuario,
        cliente=cliente,
        pacote=pacote,
        data_sessao=date(2026, 11, 10),
        hora_sessao=time(14, 0),
    )


@pytest.fixture
def integracao_pix(usuario):
    return IntegracaoPagamento.objects.create(
        user=usuario,
        provedor='pix_manual',
        chave_pix='Estudio@Example.com',
        tipo_chave='email',
        nome_titular='Estúdio Lunar Fotografia',
        cidade='Florianópolis',
    )


@pytest.fixture
def integracao_mp(usuario):
    return IntegracaoPagamento.objects.create(
        user=usuario, provedor='mercadopago', access_token='TEST-token-123')


@pytest.fixture
def api(client, usuario):
    client.force_login(usuario)
    return client


@pytest.fixture
def sdk_mp():
    with mock.patch('estudio.mercadopago_service.mercadopago.SDK') as fabrica:
        sdk = mock.MagicMock()
        fabrica.return_value = sdk
        yield sdk
