# estudio/models.py

from decimal import Decimal, ROUND_HALF_UP

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from .pix import TIPOS_CHAVE

CENTAVOS = Decimal('0.01')

# -----------------------------------------------------------------
# CATÁLOGO: CATEGORIAS, PRODUTOS E PACOTES
# -----------------------------------------------------------------


class Categoria(models.Model):
    """
    Categoria de ensaio. Ex: Gestante, Newborn, Casamento.
    """
    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='categorias')
    nome = models.CharField(max_length=100)

    class Meta:
        unique_together = ('user', 'nome')
        ordering = ['nome']

    def __str__(self):
        return self.nome


class Produto(models.Model):
    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='produtos')
    nome = models.CharField(max_length=100)
    preco_custo = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'))
    preco_venda = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'))

    def clean(self):
        if self.preco_venda is not None and self.preco_venda < 0:
            raise ValidationError("O preço de venda não pode ser negativo.")
        if self.preco_custo is not None and self.preco_custo < 0:
            raise ValidationError("O preço de custo não pode ser negativo.")

    def __str__(self):
        return self.nome


class Pacote(models.Model):
    """
    Pacote vendido ao cliente: valor base, valor da foto extra e
    produtos incluídos.
    """
    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='pacotes')
    categoria = models.ForeignKey(
        Categoria,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='pacotes'
    )
    nome = models.CharField(max_length=100)
    valor_base = models.DecimalField(max_digits=10, decimal_places=2)
    valor_foto_extra = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'))
    produtos_incluidos = models.JSONField(
        default=list, blank=True,
        help_text="Lista de {produto_id, quantidade, tipo} ou itens manuais {nome, valor_unitario, quantidade}"
    )

    def clean(self):
        if self.valor_base is not None and self.valor_base < 0:
            raise ValidationError("O valor base não pode ser negativo.")
        if self.valor_foto_extra is not None and self.valor_foto_extra < 0:
            raise ValidationError(
                "O valor da foto extra não pode ser negativo.")

    def __str__(self):
        return self.nome

# -----------------------------------------------------------------
# CONFIGURAÇÃO DE PRECIFICAÇÃO DE FOTOS EXTRAS
# -----------------------------------------------------------------


class ConfiguracaoPrecificacao(models.Model):
    MODELO_CHOICES = [
        ('fixo', 'Valor fixo do pacote'),
        ('global', 'Tabela progressiva global'),
        ('categoria', 'Tabela progressiva por categoria'),
    ]

    user = models.OneToOneField(
        User, on_delete=models.CASCADE, related_name='configuracao_precificacao')
    modelo = models.CharField(
        max_length=20, choices=MODELO_CHOICES, default='fixo')

    def __str__(self):
        return f"{self.user.username} - {self.get_modelo_display()}"


class TabelaPrecos(models.Model):
    """
    Tabela progressiva de foto extra. 'faixas' é uma lista de
    {"min": int, "max": int | null, "valor": número}.
    """
    TIPO_CHOICES = [
        ('global', 'Global'),
        ('categoria', 'Categoria'),
    ]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='tabelas_precos')
    nome = models.CharField(max_length=100)
    tipo = models.CharField(max_length=20, choices=TIPO_CHOICES)
    categoria = models.ForeignKey(
        Categoria,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='tabelas_precos'
    )
    faixas = models.JSONField(default=list, blank=True)
    usar_valor_fixo_pacote = models.BooleanField(
        default=False,
        help_text="Quando marcado, o valor de foto extra do pacote prevalece sobre a tabela."
    )
    atualizado_em = models.DateTimeField(auto_now=True)

    def clean(self):
        if self.tipo == 'categoria' and not self.categoria_id:
            raise ValidationError(
                "Tabelas do tipo 'categoria' precisam de uma categoria.")

        for faixa in self.faixas or []:
            minimo = faixa.get('min')
            maximo = faixa.get('max')
            if minimo is None or faixa.get('valor') is None:
                raise ValidationError(
                    "Cada faixa precisa de 'min' e 'valor'.")
            if maximo is not None and minimo > maximo:
                raise ValidationError(
                    f"Faixa inválida: min ({minimo}) maior que max ({maximo}).")
            if Decimal(str(faixa['valor'])) < 0:
                raise ValidationError(
                    "O valor da faixa não pode ser negativo.")

    def como_dict(self):
        return {
            'id': self.id,
            'nome': self.nome,
            'tipo': self.tipo,
            'categoria_id': self.categoria_id,
            'faixas': list(self.faixas or []),
            'usar_valor_fixo_pacote': self.usar_valor_fixo_pacote,
        }

    def __str__(self):
        return self.nome

# -----------------------------------------------------------------
# CLIENTES E SESSÕES
# -----------------------------------------------------------------


class Cliente(models.Model):
    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='clientes')
    nome = models.CharField(max_length=150)
    email = models.EmailField(blank=True, null=True)
    telefone = models.CharField(max_length=20, blank=True)
    whatsapp = models.CharField(max_length=20, blank=True)
    data_nascimento = models.DateField(null=True, blank=True)
    origem = models.CharField(max_length=50, blank=True)

    def __str__(self):
        return self.nome


class Sessao(models.Model):
    STATUS_CHOICES = [
        ('agendado', 'Agendado'),
        ('realizado', 'Realizado'),
        ('editando', 'Editando'),
        ('entregue', 'Entregue'),
        ('cancelado', 'Cancelado'),
    ]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='sessoes')
    cliente = models.ForeignKey(
        Cliente, on_delete=models.CASCADE, related_name='sessoes')
    pacote = models.ForeignKey(
        Pacote,
        on_delete=models.SET_NULL,  # Os valores ficam congelados na sessão
        null=True,
        blank=True
    )
    categoria = models.CharField(max_length=100, blank=True)
    data_sessao = models.DateField()
    hora_sessao = models.TimeField()
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default='agendado')
    descricao = models.TextField(blank=True)

    qtd_fotos_extra = models.PositiveIntegerField(default=0)
    valor_base_pacote = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True)
    valor_foto_extra = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'))
    valor_total_foto_extra = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'))
    valor_adicional = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'))
    desconto = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'))
    valor_total = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'))

    regras_congeladas = models.JSONField(null=True, blank=True)

    criado_em = models.DateTimeField(auto_now_add=True)
    atualizado_em = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-data_sessao', '-hora_sessao']

    def save(self, *args, **kwargs):
        # Congela as regras apenas na criação; depois disso os preços
        # vigentes não alteram mais esta sessão
        from . import precificacao

        if not self.regras_congeladas:
            self.regras_congeladas = precificacao.congelar_regras(
                self.user, pacote=self.pacote, categoria=self.categoria)

        precificacao.aplicar_regras_na_sessao(self)
        super().save(*args, **kwargs)

    def _total_transacoes(self, tipo):
        total = self.transacoes.filter(tipo=tipo).aggregate(
            total=models.Sum('valor'))['total']
        return Decimal(total or 0).quantize(CENTAVOS, rounding=ROUND_HALF_UP)

    @property
    def valor_pago(self):
        return self._total_transacoes('pagamento')

    @property
    def saldo_devedor(self):
        """
        Descontos lançados no financeiro abatem o saldo; ajustes somam
        (um ajuste negativo também abate).
        """
        saldo = (Decimal(self.valor_total)
                 - self.valor_pago
                 - self._total_transacoes('desconto')
                 + self._total_transacoes('ajuste'))
        return saldo.quantize(CENTAVOS, rounding=ROUND_HALF_UP)

    def __str__(self):
        return f"{self.categoria or 'Sessão'} - {self.cliente.nome} em {self.data_sessao}"

# -----------------------------------------------------------------
# INTEGRAÇÕES DE PAGAMENTO (MERCADO PAGO E PIX MANUAL)
# -----------------------------------------------------------------


class IntegracaoPagamento(models.Model):
    PROVEDOR_CHOICES = [
        ('mercadopago', 'Mercado Pago'),
        ('pix_manual', 'PIX Manual'),
    ]
    STATUS_CHOICES = [
        ('ativo', 'Ativo'),
        ('inativo', 'Inativo'),
    ]
    TIPO_CHAVE_CHOICES = [(tipo, tipo.upper()) for tipo in TIPOS_CHAVE]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='integracoes_pagamento')
    provedor = models.CharField(max_length=20, choices=PROVEDOR_CHOICES)
    status = models.CharField(
        max_length=10, choices=STATUS_CHOICES, default='ativo')

    # Mercado Pago
    access_token = models.CharField(max_length=255, blank=True)

    # PIX manual
    chave_pix = models.CharField(max_length=77, blank=True)
    tipo_chave = models.CharField(
        max_length=10, choices=TIPO_CHAVE_CHOICES, blank=True)
    nome_titular = models.CharField(max_length=100, blank=True)
    cidade = models.CharField(max_length=50, blank=True)

    class Meta:
        unique_together = ('user', 'provedor')

    def clean(self):
        if self.provedor == 'pix_manual' and (not self.chave_pix.strip() or not self.nome_titular.strip()):
            raise ValidationError(
                "Chave PIX e nome do titular são obrigatórios para o PIX manual.")
        if self.provedor == 'mercadopago' and self.status == 'ativo' and not self.access_token:
            raise ValidationError(
                "Integração Mercado Pago ativa precisa de um access token.")

    def __str__(self):
        return f"{self.user.username} - {self.get_provedor_display()} ({self.status})"


class Cobranca(models.Model):
    TIPO_CHOICES = [
        ('pix_manual', 'PIX Manual'),
        ('pix', 'PIX Mercado Pago'),
    ]
    STATUS_CHOICES = [
        ('pendente', 'Pendente'),
        ('pago', 'Pago'),
        ('cancelado', 'Cancelado'),
    ]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='cobrancas')
    cliente = models.ForeignKey(
        Cliente, on_delete=models.CASCADE, related_name='cobrancas')
    sessao = models.ForeignKey(
        Sessao,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cobrancas'
    )
    valor = models.DecimalField(max_digits=10, decimal_places=2)
    descricao = models.CharField(max_length=255, blank=True)
    tipo_cobranca = models.CharField(max_length=20, choices=TIPO_CHOICES)
    provedor = models.CharField(max_length=20, blank=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default='pendente')

    pix_copia_cola = models.TextField(
        blank=True, help_text="Código PIX Copia e Cola")
    qr_code_base64 = models.TextField(
        blank=True, help_text="Imagem Base64 do QR Code PIX")

    mp_payment_id = models.CharField(
        max_length=100, null=True, blank=True, db_index=True)
    mp_expiration_date = models.DateTimeField(null=True, blank=True)

    data_pagamento = models.DateTimeField(null=True, blank=True)
    criado_em = models.DateTimeField(auto_now_add=True)
    atualizado_em = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-criado_em']

    def clean(self):
        if self.valor is not None and self.valor <= 0:
            raise ValidationError("O valor da cobrança deve ser maior que zero.")

    def como_dict(self):
        return {
            'id': self.id,
            'cliente_id': self.cliente_id,
            'session_id': self.sessao_id,
            'valor': str(self.valor),
            'descricao': self.descricao,
            'tipo_cobranca': self.tipo_cobranca,
            'status': self.status,
            'pix_copia_cola': self.pix_copia_cola or None,
            'qr_code_base64': self.qr_code_base64 or None,
            'mp_payment_id': self.mp_payment_id,
            'mp_expiration_date': self.mp_expiration_date.isoformat() if self.mp_expiration_date else None,
            'data_pagamento': self.data_pagamento.isoformat() if self.data_pagamento else None,
        }

    def __str__(self):
        return f"Cobrança {self.get_tipo_cobranca_display()} R${self.valor} - {self.cliente.nome} ({self.status})"


class Transacao(models.Model):
    TIPO_CHOICES = [
        ('pagamento', 'Pagamento'),
        ('desconto', 'Desconto'),
        ('ajuste', 'Ajuste'),
    ]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='transacoes')
    cliente = models.ForeignKey(
        Cliente, on_delete=models.CASCADE, related_name='transacoes')
    sessao = models.ForeignKey(
        Sessao,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transacoes'
    )
    valor = models.DecimalField(max_digits=10, decimal_places=2)
    tipo = models.CharField(max_length=20, choices=TIPO_CHOICES)
    data_transacao = models.DateField()
    descricao = models.CharField(max_length=255, blank=True)
    criado_em = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-data_transacao', '-id']

    def __str__(self):
        return f"{self.get_tipo_display()} R${self.valor} - {self.cliente.nome} ({self.data_transacao})"

# -----------------------------------------------------------------
# AGENDA, LEADS E TAREFAS
# -----------------------------------------------------------------


class Agendamento(models.Model):
    """
    Compromisso na agenda do estúdio (ensaio, reunião, entrega).
    Pode nascer antes da sessão e ser ligado a ela depois.
    """
    STATUS_CHOICES = [
        ('pendente', 'Pendente'),
        ('confirmado', 'Confirmado'),
        ('cancelado', 'Cancelado'),
        ('concluido', 'Concluído'),
    ]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='agendamentos')
    cliente = models.ForeignKey(
        Cliente,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='agendamentos'
    )
    sessao = models.ForeignKey(
        Sessao,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='agendamentos'
    )
    pacote = models.ForeignKey(
        Pacote, on_delete=models.SET_NULL, null=True, blank=True)

    titulo = models.CharField(max_length=150)
    tipo = models.CharField(max_length=50, blank=True)
    data = models.DateField()
    hora = models.TimeField()
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default='pendente')
    descricao = models.TextField(blank=True)
    origem = models.CharField(max_length=50, blank=True)

    criado_em = models.DateTimeField(auto_now_add=True)
    atualizado_em = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['data', 'hora']

    def clean(self):
        if self.cliente_id and self.cliente.user_id != self.user_id:
            raise ValidationError("O cliente não pertence a este usuário.")
        if self.sessao_id and self.cliente_id and self.sessao.cliente_id != self.cliente_id:
            raise ValidationError(
                "A sessão vinculada é de outro cliente.")

    def __str__(self):
        return f"{self.titulo} em {self.data} às {self.hora.strftime('%H:%M')}"


class Lead(models.Model):
    STATUS_CHOICES = [
        ('novo', 'Novo'),
        ('contatado', 'Contatado'),
        ('negociando', 'Em negociação'),
        ('convertido', 'Convertido'),
        ('perdido', 'Perdido'),
    ]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='leads')
    cliente = models.ForeignKey(
        Cliente,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='leads',
        help_text="Preenchido quando o lead vira cliente."
    )
    nome = models.CharField(max_length=150)
    email = models.EmailField(blank=True, null=True)
    telefone = models.CharField(max_length=20, blank=True)
    origem = models.CharField(max_length=50, blank=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default='novo')
    motivo_perda = models.CharField(max_length=255, blank=True)
    observacoes = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)
    arquivado = models.BooleanField(default=False)
    data_contato = models.DateField(null=True, blank=True)

    criado_em = models.DateTimeField(auto_now_add=True)
    atualizado_em = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-criado_em']

    def clean(self):
        if self.status == 'perdido' and not self.motivo_perda.strip():
            raise ValidationError("Informe o motivo da perda do lead.")

    def converter_em_cliente(self):
        """Cria (ou reaproveita) o cliente do lead e marca como convertido."""
        if self.cliente_id is None:
            self.cliente = Cliente.objects.create(
                user=self.user,
                nome=self.nome,
                email=self.email,
                telefone=self.telefone,
                origem=self.origem,
            )
        self.status = 'convertido'
        self.save(update_fields=['cliente', 'status', 'atualizado_em'])
        return self.cliente

    def __str__(self):
        return f"{self.nome} ({self.get_status_display()})"


class Tarefa(models.Model):
    STATUS_CHOICES = [
        ('pendente', 'Pendente'),
        ('em_andamento', 'Em andamento'),
        ('concluida', 'Concluída'),
    ]
    PRIORIDADE_CHOICES = [
        ('baixa', 'Baixa'),
        ('media', 'Média'),
        ('alta', 'Alta'),
    ]

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name='tarefas')
    titulo = models.CharField(max_length=150)
    descricao = models.TextField(blank=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default='pendente')
    prioridade = models.CharField(
        max_length=10, choices=PRIORIDADE_CHOICES, default='media')
    data_vencimento = models.DateField(null=True, blank=True)
    cliente = models.ForeignKey(
        Cliente,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tarefas'
    )
    sessao = models.ForeignKey(
        Sessao,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tarefas'
    )
    concluida_em = models.DateTimeField(null=True, blank=True)

    criado_em = models.DateTimeField(auto_now_add=True)
    atualizado_em = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['status', 'data_vencimento']

    def save(self, *args, **kwargs):
        # concluida_em acompanha o status
        if self.status == 'concluida' and self.concluida_em is None:
            self.concluida_em = timezone.now()
        elif self.status != 'concluida':
            self.concluida_em = None
        super().save(*args, **kwargs)

    @property
    def atrasada(self):
        return (self.status != 'concluida'
                and self.data_vencimento is not None
                and self.data_vencimento < timezone.localdate())

    def __str__(self):
        return self.titulo
