# estudio/admin.py
from django import forms
from django.contrib import admin

from .models import (Agendamento, Categoria, Cliente, Cobranca, ConfiguracaoPrecificacao, IntegracaoPagamento, Lead,
                     Pacote, Produto, Sessao, TabelaPrecos, Tarefa, Transacao
                     )

# -----------------------------------------------------------
# Catálogo
# -----------------------------------------------------------


@admin.register(Categoria)
class CategoriaAdmin(admin.ModelAdmin):
    list_display = ('nome', 'user')
    list_filter = ('user',)
    search_fields = ('nome',)


@admin.register(Produto)
class ProdutoAdmin(admin.ModelAdmin):
    list_display = ('nome', 'user', 'preco_custo', 'preco_venda')
    search_fields = ('nome',)
    list_editable = ('preco_custo', 'preco_venda')


class PacoteAdminForm(forms.ModelForm):
    class Meta:
        model = Pacote
        fields = '__all__'

    def clean_categoria(self):
        """
        A categoria precisa ser do mesmo usuário do pacote.
        """
        user = self.cleaned_data.get('user')
        categoria = self.cleaned_data.get('categoria')

        if not user or not categoria:
            return categoria

        if categoria.user != user:
            raise forms.ValidationError(
                f"A categoria '{categoria.nome}' não pertence a '{user}'."
            )
        return categoria


@admin.register(Pacote)
class PacoteAdmin(admin.ModelAdmin):
    form = PacoteAdminForm
    list_display = ('nome', 'user', 'categoria',
                    'valor_base', 'valor_foto_extra')
    search_fields = ('nome', 'categoria__nome')
    list_filter = ('categoria',)
    list_editable = ('valor_base', 'valor_foto_extra')

# -----------------------------------------------------------
# Precificação de fotos extras
# -----------------------------------------------------------


@admin.register(ConfiguracaoPrecificacao)
class ConfiguracaoPrecificacaoAdmin(admin.ModelAdmin):
    list_display = ('user', 'modelo')
    list_filter = ('modelo',)


class TabelaPrecosAdminForm(forms.ModelForm):
    class Meta:
        model = TabelaPrecos
        fields = '__all__'

    def clean_faixas(self):
        """
        As faixas não podem se sobrepor (ordenadas pelo início).
        """
        faixas = self.cleaned_data.get('faixas') or []
        try:
            ordenadas = sorted(faixas, key=lambda f: f['min'])
        except (KeyError, TypeError):
            raise forms.ValidationError("Cada faixa precisa de 'min'.")

        for atual, proxima in zip(ordenadas, ordenadas[1:]):
            if atual.get('max') is None or atual['max'] >= proxima['min']:
                raise forms.ValidationError(
                    f"Sobreposição de faixas: ({atual['min']}-{atual.get('max')}) "
                    f"conflita com ({proxima['min']}-{proxima.get('max')})."
                )
        return faixas


@admin.register(TabelaPrecos)
class TabelaPrecosAdmin(admin.ModelAdmin):
    form = TabelaPrecosAdminForm
    list_display = ('nome', 'user', 'tipo', 'categoria', 'atualizado_em')
    list_filter = ('tipo',)
    search_fields = ('nome', 'categoria__nome')

# -----------------------------------------------------------
# Clientes e sessões
# -----------------------------------------------------------


@admin.register(Cliente)
class ClienteAdmin(admin.ModelAdmin):
    list_display = ('nome', 'email', 'telefone', 'user')
    search_fields = ('nome', 'email', 'telefone')
    list_filter = ('user',)


@admin.register(Sessao)
class SessaoAdmin(admin.ModelAdmin):
    list_display = (
        '__str__',
        'data_sessao',
        'hora_sessao',
        'status',
        'valor_base_pacote',
        'qtd_fotos_extra',
        'valor_total',
    )
    list_filter = ('data_sessao', 'status', 'categoria')
    search_fields = ('cliente__nome', 'categoria', 'pacote__nome')

    # Valores derivados das regras congeladas
    readonly_fields = ('valor_foto_extra', 'valor_total_foto_extra',
                       'valor_total', 'regras_congeladas')

# -----------------------------------------------------------
# Pagamentos
# -----------------------------------------------------------


@admin.register(IntegracaoPagamento)
class IntegracaoPagamentoAdmin(admin.ModelAdmin):
    list_display = ('user', 'provedor', 'status', 'tipo_chave')
    list_filter = ('provedor', 'status')
    search_fields = ('user__username', 'nome_titular')


@admin.register(Cobranca)
class CobrancaAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'tipo_cobranca', 'status',
                    'valor', 'criado_em', 'data_pagamento')
    list_filter = ('tipo_cobranca', 'status', 'criado_em')
    search_fields = ('cliente__nome', 'mp_payment_id', 'descricao')
    readonly_fields = ('mp_payment_id', 'pix_copia_cola',
                       'qr_code_base64', 'mp_expiration_date', 'data_pagamento')


@admin.register(Transacao)
class TransacaoAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'tipo', 'valor', 'data_transacao')
    list_filter = ('tipo', 'data_transacao')
    search_fields = ('cliente__nome', 'descricao')

# -----------------------------------------------------------
# Agenda, leads e tarefas
# -----------------------------------------------------------


@admin.register(Agendamento)
class AgendamentoAdmin(admin.ModelAdmin):
    list_display = ('titulo', 'cliente', 'data', 'hora', 'status')
    list_filter = ('status', 'data')
    search_fields = ('titulo', 'cliente__nome')
    list_editable = ('status',)


@admin.register(Lead)
class LeadAdmin(admin.ModelAdmin):
    list_display = ('nome', 'telefone', 'origem', 'status', 'arquivado', 'criado_em')
    list_filter = ('status', 'origem', 'arquivado')
    search_fields = ('nome', 'email', 'telefone')
    actions = ['converter_em_clientes']

    @admin.action(description="Converter leads selecionados em clientes")
    def converter_em_clientes(self, request, queryset):
        for lead in queryset:
            lead.converter_em_cliente()
        self.message_user(request, f"{queryset.count()} leads convertidos.")


@admin.register(Tarefa)
class TarefaAdmin(admin.ModelAdmin):
    list_display = ('titulo', 'prioridade', 'status', 'data_vencimento', 'cliente')
    list_filter = ('status', 'prioridade')
    search_fields = ('titulo', 'descricao')
    readonly_fields = ('concluida_em',)
