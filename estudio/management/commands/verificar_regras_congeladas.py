# estudio/management/commands/verificar_regras_congeladas.py

from django.core.management.base import BaseCommand

from estudio import precificacao
from estudio.models import Sessao


class Command(BaseCommand):
    help = 'Verifica as regras de precificação congeladas das sessões.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--migrar',
            action='store_true',
            help='Congela as regras vigentes nas sessões sem dados ou em formato antigo.',
        )

    def handle(self, *args, **options):
        sessoes = Sessao.objects.select_related('user', 'pacote')
        problemas = precificacao.verificar_integridade(sessoes)

        if not problemas:
            self.stdout.write(self.style.SUCCESS(
                'Todas as sessões possuem regras congeladas.'))
            return

        for problema in problemas:
            estilo = self.style.WARNING if problema['severidade'] == 'warning' else self.style.NOTICE
            self.stdout.write(estilo(
                f"Sessão {problema['session_id']}: {problema['problema']}"))

        if not options['migrar']:
            self.stdout.write(
                f'{len(problemas)} sessões com problemas. Use --migrar para corrigir.')
            return

        migradas = 0
        for sessao in sessoes.filter(id__in=[p['session_id'] for p in problemas]):
            sessao.regras_congeladas = precificacao.congelar_regras(
                sessao.user, pacote=sessao.pacote, categoria=sessao.categoria)
            # Mantém o valor base já cobrado da sessão
            sessao.save()
            migradas += 1

        self.stdout.write(self.style.SUCCESS(
            f'Migração concluída: {migradas} sessões migradas.'))
