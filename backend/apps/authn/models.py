from django.contrib.auth.models import AbstractUser
from django.db import models
from apps.tenancy.models import Tenant
import uuid


class Department(models.Model):
    """
    Departamento dentro de um Tenant.
    É a fila de atendimento: conversas são roteadas para um departamento e a
    configuração de IA pode ser definida por departamento.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name='departments',
        verbose_name='Tenant'
    )
    name = models.CharField(
        max_length=100,
        verbose_name='Nome do Departamento',
        help_text='Ex: Financeiro, Comercial, Suporte'
    )
    color = models.CharField(
        max_length=7,
        default='#3b82f6',
        verbose_name='Cor (Hex)'
    )
    ai_enabled = models.BooleanField(
        default=False,
        verbose_name='IA Habilitada',
        help_text='Se este departamento tem recursos de IA habilitados'
    )
    created_at = models.DateTimeField(auto_now_add=True, verbose_name='Criado em')
    updated_at = models.DateTimeField(auto_now=True, verbose_name='Atualizado em')
    
    class Meta:
        db_table = 'authn_department'
        verbose_name = 'Departamento'
        verbose_name_plural = 'Departamentos'
        unique_together = [['tenant', 'name']]
        ordering = ['name']
    
    def __str__(self):
        return f"{self.name} ({self.tenant.name})"


class User(AbstractUser):
    """Custom User model with tenant and role."""
    
    ROLE_CHOICES = [
        ('admin', 'Administrador'),       # Admin do tenant (acesso total)
        ('gerente', 'Gerente'),           # Gerente de departamento
        ('agente', 'Agente'),             # Agente (apenas chat do seu depto)
    ]
    
    # Override email to make it unique (required for USERNAME_FIELD)
    email = models.EmailField(
        unique=True,
        help_text="Email address (used for login)"
    )
    
    # Use email as username
    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']
    
    # Superusers criados via createsuperuser não têm tenant
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name='users',
        null=True,
        blank=True
    )
    role = models.CharField(
        max_length=16,
        choices=ROLE_CHOICES,
        default='agente'
    )
    departments = models.ManyToManyField(
        'Department',
        related_name='users',
        blank=True,
        verbose_name='Departamentos',
        help_text='Departamentos aos quais este usuário pertence'
    )
    display_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="Nome de exibição"
    )
    
    class Meta:
        db_table = 'authn_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
    
    def __str__(self):
        tenant_name = self.tenant.name if self.tenant_id else '-'
        return f"{self.username} ({tenant_name})"
    
    @property
    def is_admin(self):
        """Check if user is admin (acesso total ao tenant)."""
        return self.role == 'admin' or self.is_superuser
    
    def can_access_department(self, department_id):
        """Admin acessa todas as filas; demais usuários apenas as suas."""
        if self.is_admin:
            return True
        return self.departments.filter(id=department_id).exists()
