# estudio/urls.py

from django.urls import path
from . import views

app_name = 'estudio'

urlpatterns = [
    # --- COBRANÇAS ---
    path('cobrancas/', views.api_cobrancas, name='api_cobrancas'),
    path('cobrancas/pix-manual/', views.api_criar_cobranca_pix_manual,
         name='api_criar_cobranca_pix_manual'),
    path('cobrancas/pix/', views.api_criar_cobranca_pix,
         name='api_criar_cobranca_pix'),
    path('cobrancas/<int:cobranca_id>/cancelar/',
         views.api_cancelar_cobranca, name='api_cancelar_cobranca'),
    path('cobrancas/<int:cobranca_id>/confirmar/',
         views.api_confirmar_cobranca, name='api_confirmar_cobranca'),
    path('cobrancas/<int:cobranca_id>/status/',
         views.api_status_cobranca, name='api_status_cobranca'),

    # --- SESSÕES (REGRAS CONGELADAS) ---
    path('sessoes/', views.api_criar_sessao, name='api_criar_sessao'),
    path('sessoes/<int:sessao_id>/resumo/',
         views.api_resumo_sessao, name='api_resumo_sessao'),
    path('sessoes/<int:sessao_id>/fotos-extras/',
         views.api_fotos_extras_sessao, name='api_fotos_extras_sessao'),
    path('sessoes/<int:sessao_id>/recongelar/',
         views.api_recongelar_sessao, name='api_recongelar_sessao'),
]
