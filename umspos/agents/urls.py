from django.urls import path
from .views import (
    agent_list_create, agent_detail, agent_inventory, agent_inventory_lookup,
    agent_assign, agent_return, agent_sale, agent_transactions,
)

urlpatterns = [
    path('agents/', agent_list_create, name='agent-list-create'),
    path('agents/<int:pk>/', agent_detail, name='agent-detail'),
    path('agents/<int:pk>/inventory/', agent_inventory, name='agent-inventory'),
    path('agents/<int:pk>/inventory/lookup/', agent_inventory_lookup, name='agent-inventory-lookup'),
    path('agents/<int:pk>/assign/', agent_assign, name='agent-assign'),
    path('agents/<int:pk>/return/', agent_return, name='agent-return'),
    path('agents/<int:pk>/sales/', agent_sale, name='agent-sale'),
    path('agents/<int:pk>/transactions/', agent_transactions, name='agent-transactions'),
]
