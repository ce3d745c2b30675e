# estudio/management/commands/cleanup_pending_charges.py

import logging

from django.core.management.base import BaseCommand
from django.utils import timezone

from estudio.cobrancas import aplicar_status_mercadopago
from estudio.mercadopago_service import MercadoPagoService
from estudio.models import Cobranca

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Concilia cobranças PIX do Mercado Pago pendentes cujo prazo expirou.'

    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE(
            'Iniciando limpeza de cobranças pendentes...'))

        expiradas = Cobranca.objects.filter(
            status='pendente',
            tipo_cobranca='pix',
            mp_payment_id__isnull=False,
            mp_expiration_date__lte=timezone.now()
        ).select_related('user')

        if not expiradas.exists():
            self.stdout.write(self.style.SUCCESS(
                'Nenhuma cobrança expirada encontrada.'))
            return

        self.stdout.write(
            f'Encontradas {expiradas.count()} cobranças expiradas.')

        servicos = {}
        for cobranca in expiradas:
            self.stdout.write(
                f'Verificando cobrança ID: {cobranca.id} (Payment ID: {cobranca.mp_payment_id})...')

            if cobranca.user_id not in servicos:
                try:
                    servicos[cobranca.user_id] = MercadoPagoService(cobranca.user)
                except ValueError as e:
                    servicos[cobranca.user_id] = None
                    logger.warning(f"Usuário {cobranca.user_id}: {e}")

            mp = servicos[cobranca.user_id]
            if mp is None:
                self.stdout.write(self.style.ERROR(
                    f'Sem integração Mercado Pago para a cobrança {cobranca.id}. Nenhuma ação tomada.'))
                continue

            # Dupla checagem na API antes de cancelar
            status_real = mp.verificar_status_pagamento(cobranca.mp_payment_id)

            if status_real == 'approved':
                aplicar_status_mercadopago(cobranca, status_real, 'cleanup job')
                self.stdout.write(self.style.SUCCESS(
                    f'Cobrança {cobranca.id} PAGA.'))

            elif status_real in ['rejected', 'cancelled', 'expired', 'pending']:
                # O prazo acabou: pendente também é cancelada
                cobranca.status = 'cancelado'
                cobranca.save(update_fields=['status', 'atualizado_em'])
                self.stdout.write(self.style.WARNING(
                    f'Cobrança {cobranca.id} CANCELADA (Status MP: {status_real}).'))

            else:
                self.stdout.write(self.style.ERROR(
                    f'Status desconhecido ({status_real}) para a cobrança {cobranca.id}. Nenhuma ação tomada.'))

        self.stdout.write(self.style.SUCCESS('Limpeza concluída.'))
