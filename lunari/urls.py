# lunari/urls.py

from django.contrib import admin
from django.urls import path, include
from estudio import views as estudio_views

urlpatterns = [
    path('admin/', admin.site.urls),

    # Notificações do Mercado Pago (sem login, validadas na API do MP)
    path('webhook/mercado-pago/',
         estudio_views.mercadopago_webhook,
         name='mercadopago_webhook'),

    path('api/', include('estudio.urls', namespace='estudio')),
]
