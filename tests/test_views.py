import json
from decimal import Decimal

import pytest
from django.urls import reverse

from estudio.models import Cobranca, Sessao, Transacao
from estudio.pix import campo_emv, ler_campos_emv, validar_payload_pix


def _post(client, url, dados=None):
    return client.post(url, data=json.dumps(dados or {}), content_type='application/json')


def _pagamento_mp(payment_id=1234567890):
    return {
        "status": 201,
        "response": {
            "id": payment_id,
            "status": "pending",
            "date_of_expiration": "2026-11-10T15:30:00.000-03:00",
            "point_of_interaction": {
                "transaction_data": {
                    "qr_code": "00020126...6304ABCD",
                    "qr_code_base64": "iVBORw0KGgo=",
                },
            },
        },
    }


def _cobranca_mp(usuario, cliente, sessao=None, payment_id='555'):
    return Cobranca.objects.create(
        user=usuario, cliente=cliente, sessao=sessao, valor=Decimal('200.00'),
        tipo_cobranca='pix', provedor='mercadopago', mp_payment_id=payment_id)


@pytest.mark.django_db
class TestAutenticacao:
    def test_api_exige_login(self, client) -> None:
        resposta = _post(client, reverse('estudio:api_criar_cobranca_pix_manual'), {'valor': 10})
        assert resposta.status_code == 403

    def test_metodo_invalido(self, api) -> None:
        resposta = api.get(reverse('estudio:api_criar_cobranca_pix_manual'))
        assert resposta.status_code == 405


@pytest.mark.django_db
class TestCobrancaPixManual:
    url = 'estudio:api_criar_cobranca_pix_manual'

    def test_cria_cobranca_com_br_code(self, api, cliente, integracao_pix) -> None:
        resposta = _post(api, reverse(self.url), {
            'clienteId': cliente.id, 'valor': '150', 'descricao': 'Sinal do ensaio'})

        assert resposta.status_code == 201
        dados = resposta.json()['cobranca']
        assert dados['status'] == 'pendente'
        assert dados['valor'] == '150.00'
        assert dados['tipo_cobranca'] == 'pix_manual'
        assert dados['qr_code_base64'].startswith('data:image/png;base64,')

        payload = dados['pix_copia_cola']
        assert validar_payload_pix(payload)
        campos = ler_campos_emv(payload)
        assert campos['26'] == '0014br.gov.bcb.pix0119estudio@example.com'
        assert campos['54'] == '150.00'
        assert campos['59'] == 'ESTUDIO LUNAR FOTOGRAFIA'
        assert campos['60'] == 'FLORIANOPOLIS'
        assert campos["62"] == campo_emv("05", f"LUNARI{dados['id']}")

    def test_cliente_resolvido_pela_sessao(self, api, sessao, integracao_pix) -> None:
        resposta = _post(api, reverse(self.url), {'sessionId': sessao.id, 'valor': 100})

        assert resposta.status_code == 201
        dados = resposta.json()['cobranca']
        assert dados['cliente_id'] == sessao.cliente_id
        assert dados['session_id'] == sessao.id

    def test_sem_integracao(self, api, cliente) -> None:
        resposta = _post(api, reverse(self.url), {'clienteId': cliente.id, 'valor': 100})
        assert resposta.status_code == 400
        assert Cobranca.objects.count() == 0

    @pytest.mark.parametrize('valor', [0, -5, None, 'NaN', 'Infinity', 'abc'])
    def test_valor_invalido(self, api, cliente, integracao_pix, valor) -> None:
        resposta = _post(api, reverse(self.url), {'clienteId': cliente.id, 'valor': valor})
        assert resposta.status_code == 400

    def test_valor_arredondado_para_centavos(self, api, cliente, integracao_pix) -> None:
        resposta = _post(api, reverse(self.url), {'clienteId': cliente.id, 'valor': '99.999'})

        dados = resposta.json()['cobranca']
        assert dados['valor'] == '100.00'
        assert ler_campos_emv(dados['pix_copia_cola'])['54'] == '100.00'

    def test_sem_cliente(self, api, integracao_pix) -> None:
        resposta = _post(api, reverse(self.url), {'valor': 100})
        assert resposta.status_code == 400

    def test_cliente_de_outro_usuario(self, api, django_user_model, integracao_pix) -> None:
        from estudio.models import Cliente

        outro = django_user_model.objects.create_user(username='outro', password='x')
        alheio = Cliente.objects.create(user=outro, nome='Alheio')

        resposta = _post(api, reverse(self.url), {'clienteId': alheio.id, 'valor': 100})
        assert resposta.status_code == 404

    def test_json_invalido(self, api) -> None:
        resposta = api.post(reverse(self.url), data='{', content_type='application/json')
        assert resposta.status_code == 400


@pytest.mark.django_db
class TestCobrancaPixMercadoPago:
    url = 'estudio:api_criar_cobranca_pix'

    def test_cria_pagamento(self, api, sessao, integracao_mp, sdk_mp) -> None:
        sdk_mp.payment.return_value.create.return_value = _pagamento_mp()

        resposta = _post(api, reverse(self.url), {'sessionId': sessao.id, 'valor': 250})

        assert resposta.status_code == 201
        dados = resposta.json()['cobranca']
        assert dados['mp_payment_id'] == '1234567890'
        assert dados['pix_copia_cola'] == '00020126...6304ABCD'
        assert dados['mp_expiration_date'].startswith('2026-11-10')

        enviado = sdk_mp.payment.return_value.create.call_args[0][0]
        assert enviado['transaction_amount'] == 250.0
        assert enviado['payment_method_id'] == 'pix'
        assert enviado['external_reference'] == f"{sessao.user_id}|{sessao.cliente_id}|{sessao.id}"
        assert enviado['payer']['email'] == 'maria@example.com'

    def test_sem_token(self, api, cliente) -> None:
        resposta = _post(api, reverse(self.url), {'clienteId': cliente.id, 'valor': 250})
        assert resposta.status_code == 400

    def test_erro_na_api(self, api, cliente, integracao_mp, sdk_mp) -> None:
        sdk_mp.payment.return_value.create.return_value = {"status": 400, "response": {"message": "bad"}}

        resposta = _post(api, reverse(self.url), {'clienteId': cliente.id, 'valor': 250})

        assert resposta.status_code == 400
        assert Cobranca.objects.count() == 0


@pytest.mark.django_db
class TestCicloDaCobranca:
    def test_listar_exige_filtro(self, api) -> None:
        assert api.get(reverse('estudio:api_cobrancas')).status_code == 400

    def test_listar_por_sessao_e_cliente(self, api, usuario, cliente, sessao) -> None:
        da_sessao = _cobranca_mp(usuario, cliente, sessao, payment_id='1')
        _cobranca_mp(usuario, cliente, payment_id='2')

        por_sessao = api.get(reverse('estudio:api_cobrancas'), {'session_id': sessao.id}).json()
        por_cliente = api.get(reverse('estudio:api_cobrancas'), {'cliente_id': cliente.id}).json()

        assert [c['id'] for c in por_sessao['cobrancas']] == [da_sessao.id]
        assert len(por_cliente['cobrancas']) == 2

    def test_confirmar_registra_transacao(self, api, usuario, cliente, sessao) -> None:
        cobranca = _cobranca_mp(usuario, cliente, sessao)

        resposta = _post(api, reverse('estudio:api_confirmar_cobranca', args=[cobranca.id]))

        assert resposta.status_code == 200
        cobranca.refresh_from_db()
        assert cobranca.status == 'pago'
        assert cobranca.data_pagamento is not None
        transacao = Transacao.objects.get(id=resposta.json()['transacao_id'])
        assert transacao.valor == Decimal('200.00')
        assert transacao.tipo == 'pagamento'
        assert sessao.valor_pago == Decimal('200.00')

    def test_confirmar_duas_vezes_nao_duplica(self, api, usuario, cliente, sessao) -> None:
        cobranca = _cobranca_mp(usuario, cliente, sessao)
        _post(api, reverse('estudio:api_confirmar_cobranca', args=[cobranca.id]))
        _post(api, reverse('estudio:api_confirmar_cobranca', args=[cobranca.id]))

        assert Transacao.objects.filter(sessao=sessao).count() == 1

    def test_confirmar_avulsa_sem_transacao(self, api, usuario, cliente) -> None:
        cobranca = _cobranca_mp(usuario, cliente)
        resposta = _post(api, reverse('estudio:api_confirmar_cobranca', args=[cobranca.id]))

        assert resposta.json()['transacao_id'] is None
        assert Transacao.objects.count() == 0

    def test_cancelar(self, api, usuario, cliente) -> None:
        cobranca = _cobranca_mp(usuario, cliente)
        resposta = _post(api, reverse('estudio:api_cancelar_cobranca', args=[cobranca.id]))

        assert resposta.status_code == 200
        cobranca.refresh_from_db()
        assert cobranca.status == 'cancelado'

        confirmar = _post(api, reverse('estudio:api_confirmar_cobranca', args=[cobranca.id]))
        assert confirmar.status_code == 400

    def test_nao_cancela_cobranca_paga(self, api, usuario, cliente) -> None:
        cobranca = _cobranca_mp(usuario, cliente)
        cobranca.status = 'pago'
        cobranca.save()

        resposta = _post(api, reverse('estudio:api_cancelar_cobranca', args=[cobranca.id]))
        assert resposta.status_code == 400

    def test_status_consulta_mercado_pago(self, api, usuario, cliente, sessao, integracao_mp, sdk_mp) -> None:
        cobranca = _cobranca_mp(usuario, cliente, sessao)
        sdk_mp.payment.return_value.get.return_value = {"status": 200, "response": {"status": "approved"}}

        resposta = api.get(reverse('estudio:api_status_cobranca', args=[cobranca.id]))

        assert resposta.json() == {'status': 'pago', 'cobranca_id': cobranca.id}
        sdk_mp.payment.return_value.get.assert_called_once_with(555)
        assert Transacao.objects.filter(sessao=sessao).count() == 1

    def test_cobranca_de_outro_usuario(self, api, django_user_model, cliente) -> None:
        outro = django_user_model.objects.create_user(username='outro', password='x')
        cobranca = _cobranca_mp(outro, cliente)

        resposta = api.get(reverse('estudio:api_status_cobranca', args=[cobranca.id]))
        assert resposta.status_code == 404


@pytest.mark.django_db
class TestWebhookMercadoPago:
    url = 'mercadopago_webhook'

    def test_pagamento_aprovado(self, client, usuario, cliente, sessao, integracao_mp, sdk_mp) -> None:
        cobranca = _cobranca_mp(usuario, cliente, sessao)
        sdk_mp.payment.return_value.get.return_value = {"status": 200, "response": {"status": "approved"}}

        resposta = _post(client, reverse(self.url), {"type": "payment", "data": {"id": 555}})

        assert resposta.json() == {"status": "recebido"}
        cobranca.refresh_from_db()
        assert cobranca.status == 'pago'
        assert Transacao.objects.filter(sessao=sessao, tipo='pagamento').count() == 1

    def test_action_payment_updated(self, client, usuario, cliente, integracao_mp, sdk_mp) -> None:
        cobranca = _cobranca_mp(usuario, cliente)
        sdk_mp.payment.return_value.get.return_value = {"status": 200, "response": {"status": "rejected"}}

        _post(client, reverse(self.url), {"action": "payment.updated", "data": {"id": "555"}})

        cobranca.refresh_from_db()
        assert cobranca.status == 'cancelado'

    def test_pendente_nao_muda(self, client, usuario, cliente, integracao_mp, sdk_mp) -> None:
        cobranca = _cobranca_mp(usuario, cliente)
        sdk_mp.payment.return_value.get.return_value = {"status": 200, "response": {"status": "in_process"}}

        resposta = _post(client, reverse(self.url), {"type": "payment", "data": {"id": 555}})

        assert resposta.status_code == 200
        cobranca.refresh_from_db()
        assert cobranca.status == 'pendente'

    def test_ja_processado(self, client, usuario, cliente, integracao_mp, sdk_mp) -> None:
        cobranca = _cobranca_mp(usuario, cliente)
        cobranca.status = 'pago'
        cobranca.save()

        resposta = _post(client, reverse(self.url), {"type": "payment", "data": {"id": 555}})

        assert resposta.json() == {"status": "ja_processado"}
        sdk_mp.payment.return_value.get.assert_not_called()

    def test_pagamento_desconhecido(self, client, sdk_mp) -> None:
        resposta = _post(client, reverse(self.url), {"type": "payment", "data": {"id": 1}})
        assert resposta.json() == {"status": "nao_encontrado"}

    def test_outro_tipo_de_evento(self, client) -> None:
        resposta = _post(client, reverse(self.url), {"type": "plan", "data": {"id": 1}})
        assert resposta.json() == {"status": "recebido"}

    def test_json_invalido(self, client) -> None:
        resposta = client.post(reverse(self.url), data='nao-json', content_type='application/json')
        assert resposta.status_code == 400


@pytest.mark.django_db
class TestApiSessoes:
    def test_criar_sessao(self, api, cliente, pacote) -> None:
        resposta = _post(api, reverse('estudio:api_criar_sessao'), {
            'clienteId': cliente.id,
            'pacoteId': pacote.id,
            'data': '2026-12-01',
            'hora': '10:00',
            'qtdFotosExtra': 2,
            'desconto': '15.50',
        })

        assert resposta.status_code == 201
        sessao = resposta.json()['sessao']
        assert sessao['categoria'] == ''
        assert sessao['valor_total'] == '524.50'
        assert sessao['saldo_devedor'] == '524.50'
        assert sessao['data_congelamento']

    def test_criar_sessao_dados_invalidos(self, api, cliente) -> None:
        resposta = _post(api, reverse('estudio:api_criar_sessao'), {
            'clienteId': cliente.id, 'data': '01/12/2026', 'hora': '10:00'})
        assert resposta.status_code == 400

    def test_criar_sessao_fotos_extras_negativas(self, api, cliente, pacote) -> None:
        resposta = _post(api, reverse('estudio:api_criar_sessao'), {
            'clienteId': cliente.id, 'pacoteId': pacote.id,
            'data': '2026-12-01', 'hora': '10:00', 'qtdFotosExtra': -3})

        assert resposta.status_code == 400
        assert resposta.json()['status'] == 'error'
        assert not Sessao.objects.exists()

    @pytest.mark.parametrize('corpo', ['[]', '"texto"', '42'])
    def test_criar_sessao_corpo_que_nao_e_objeto(self, api, corpo) -> None:
        resposta = api.post(reverse('estudio:api_criar_sessao'), data=corpo, content_type='application/json')
        assert resposta.status_code == 400

    def test_recongelar_corpo_que_nao_e_objeto(self, api, sessao) -> None:
        resposta = api.post(reverse('estudio:api_recongelar_sessao', args=[sessao.id]),
                            data='[]', content_type='application/json')
        assert resposta.status_code == 400

    def test_criar_sessao_pacote_inexistente(self, api, cliente) -> None:
        resposta = _post(api, reverse('estudio:api_criar_sessao'), {
            'clienteId': cliente.id, 'pacoteId': 999, 'data': '2026-12-01', 'hora': '10:00'})
        assert resposta.status_code == 404

    def test_fotos_extras_usam_regras_congeladas(self, api, sessao, pacote) -> None:
        pacote.valor_foto_extra = Decimal('99.00')
        pacote.save()

        resposta = _post(api, reverse('estudio:api_fotos_extras_sessao', args=[sessao.id]), {'quantidade': 5})

        dados = resposta.json()['sessao']
        assert dados['valor_foto_extra'] == '20.00'
        assert dados['valor_total_foto_extra'] == '100.00'
        assert dados['valor_total'] == '600.00'

    def test_fotos_extras_quantidade_negativa(self, api, sessao) -> None:
        resposta = _post(api, reverse('estudio:api_fotos_extras_sessao', args=[sessao.id]), {'quantidade': -1})
        assert resposta.status_code == 400

    def test_resumo_com_pagamento(self, api, usuario, cliente, sessao) -> None:
        cobranca = _cobranca_mp(usuario, cliente, sessao)
        _post(api, reverse('estudio:api_confirmar_cobranca', args=[cobranca.id]))

        dados = api.get(reverse('estudio:api_resumo_sessao', args=[sessao.id])).json()['sessao']

        assert dados['valor_total'] == '500.00'
        assert dados['valor_pago'] == '200.00'
        assert dados['saldo_devedor'] == '300.00'

    def test_recongelar_produtos(self, api, sessao) -> None:
        resposta = _post(api, reverse('estudio:api_recongelar_sessao', args=[sessao.id]), {
            'alvo': 'produtos', 'produtos': [{'nome': 'Quadro', 'valor': 120}]})

        assert resposta.json()['sessao']['valor_total'] == '620.00'

    def test_recongelar_alvo_invalido(self, api, sessao) -> None:
        resposta = _post(api, reverse('estudio:api_recongelar_sessao', args=[sessao.id]), {'alvo': 'tudo'})
        assert resposta.status_code == 400
