"""Central catalog of modules, operations and default role composition.
Extend cautiously; never rename module keys silently since stored permissions reference them.
"""
from __future__ import annotations
import re
from typing import Dict, Iterable, List

MODULES = [
    'dashboard', 'products', 'categories', 'brands', 'customers', 'orders', 'reviews',
    'coupons', 'banners', 'wishlist', 'cart', 'settings', 'admins', 'roles', 'permissions',
    'reports', 'analytics', 'media', 'notifications', 'faqs', 'cms',
]

# canonical order is also the display order
OPERATIONS = ['view', 'add', 'edit', 'delete', 'export', 'import']

PERMISSION_CATEGORIES = ['E-commerce', 'Content', 'System', 'Reports', 'User Management']

MODULE_DEFINITIONS: Dict[str, Dict[str, str]] = {
    'dashboard': {'label': 'Dashboard', 'description': 'System overview and analytics', 'icon': 'dashboard'},
    'products': {'label': 'Products', 'description': 'Product catalog management', 'icon': 'inventory'},
    'categories': {'label': 'Categories', 'description': 'Product category management', 'icon': 'category'},
    'brands': {'label': 'Brands', 'description': 'Product brand management', 'icon': 'brand'},
    'customers': {'label': 'Customers', 'description': 'Customer account management', 'icon': 'people'},
    'orders': {'label': 'Orders', 'description': 'Order processing and fulfillment', 'icon': 'receipt'},
    'reviews': {'label': 'Reviews', 'description': 'Product review moderation', 'icon': 'star'},
    'coupons': {'label': 'Coupons', 'description': 'Discount and coupon management', 'icon': 'discount'},
    'banners': {'label': 'Banners', 'description': 'Promotional banner management', 'icon': 'image'},
    'wishlist': {'label': 'Wishlist', 'description': 'Customer wishlists', 'icon': 'favorite'},
    'cart': {'label': 'Cart', 'description': 'Customer carts', 'icon': 'shopping_cart'},
    'settings': {'label': 'Settings', 'description': 'System configuration', 'icon': 'settings'},
    'admins': {'label': 'Admin Users', 'description': 'Administrative user management', 'icon': 'admin_panel_settings'},
    'roles': {'label': 'Roles', 'description': 'Role management', 'icon': 'group'},
    'permissions': {'label': 'Permissions', 'description': 'Permission management', 'icon': 'security'},
    'reports': {'label': 'Reports', 'description': 'Business reports and insights', 'icon': 'assessment'},
    'analytics': {'label': 'Analytics', 'description': 'Detailed analytics and metrics', 'icon': 'analytics'},
    'media': {'label': 'Media', 'description': 'Uploaded media library', 'icon': 'perm_media'},
    'notifications': {'label': 'Notifications', 'description': 'Outgoing notifications', 'icon': 'notifications'},
    'faqs': {'label': 'FAQs', 'description': 'Frequently asked questions', 'icon': 'help'},
    'cms': {'label': 'Pages', 'description': 'Content pages', 'icon': 'article'},
}

OPERATION_DEFINITIONS: Dict[str, Dict[str, str]] = {
    'view': {'label': 'View', 'description': 'Read and view data', 'icon': 'visibility', 'color': 'blue'},
    'add': {'label': 'Add', 'description': 'Create new records', 'icon': 'add', 'color': 'green'},
    'edit': {'label': 'Edit', 'description': 'Modify existing records', 'icon': 'edit', 'color': 'orange'},
    'delete': {'label': 'Delete', 'description': 'Remove records', 'icon': 'delete', 'color': 'red'},
    'export': {'label': 'Export', 'description': 'Export data to files', 'icon': 'download', 'color': 'purple'},
    'import': {'label': 'Import', 'description': 'Import data from files', 'icon': 'upload', 'color': 'teal'},
}

MODULE_CATEGORY = {
    'dashboard': 'Reports', 'reports': 'Reports', 'analytics': 'Reports',
    'banners': 'Content', 'reviews': 'Content', 'media': 'Content', 'faqs': 'Content', 'cms': 'Content',
    'settings': 'System', 'notifications': 'System',
    'admins': 'User Management', 'roles': 'User Management', 'permissions': 'User Management',
}

SUPER_ADMIN_SLUG = 'super-admin'

_SLUG_STRIP = re.compile(r'[^a-z0-9]+')


def slugify(value: str) -> str:
    return _SLUG_STRIP.sub('-', (value or '').strip().lower()).strip('-')


def validate_module(module: str) -> str:
    if module not in MODULES:
        raise ValueError(f'Unknown module: {module}')
    return module


def validate_operations(operations: Iterable[str]) -> List[str]:
    """Return the operations de-duplicated in canonical order; reject unknown ones."""
    ops = set(operations or [])
    unknown = ops - set(OPERATIONS)
    if unknown:
        raise ValueError(f'Unknown operations: {sorted(unknown)}')
    return [op for op in OPERATIONS if op in ops]


def _full_access(module: str) -> Dict[str, object]:
    label = MODULE_DEFINITIONS[module]['label']
    return {
        'name': f'{label} Management',
        'slug': f'{module}-management',
        'module': module,
        'operations': list(OPERATIONS),
        'category': MODULE_CATEGORY.get(module, 'E-commerce'),
        'is_system': True,
    }


def _view_only(module: str) -> Dict[str, object]:
    label = MODULE_DEFINITIONS[module]['label']
    return {
        'name': f'{label} View Only',
        'slug': f'{module}-view-only',
        'module': module,
        'operations': ['view'],
        'category': MODULE_CATEGORY.get(module, 'E-commerce'),
        'is_system': True,
    }


DEFAULT_PERMISSIONS: List[Dict[str, object]] = (
    [_full_access(m) for m in MODULES] + [_view_only(m) for m in MODULES]
)

_CONTENT_MODULES = ['products', 'categories', 'brands', 'reviews', 'banners', 'media', 'faqs', 'cms']
_OPERATIONS_MODULES = ['orders', 'customers', 'coupons', 'wishlist', 'cart', 'notifications']

# Role slug -> definition. permission slugs of '*' mean every catalog permission.
ROLE_PRESETS: Dict[str, Dict[str, object]] = {
    SUPER_ADMIN_SLUG: {
        'name': 'Super Admin', 'level': 100, 'is_system': True,
        'description': 'Unrestricted access to every module',
        'permissions': ['*'],
    },
    'manager': {
        'name': 'Manager', 'level': 80, 'is_system': True,
        'description': 'Store operations without user administration',
        'permissions': [f'{m}-management' for m in _CONTENT_MODULES + _OPERATIONS_MODULES]
        + ['dashboard-view-only', 'reports-view-only', 'analytics-view-only'],
    },
    'editor': {
        'name': 'Editor', 'level': 50, 'is_system': True,
        'description': 'Catalog and content editing',
        'permissions': [f'{m}-management' for m in _CONTENT_MODULES] + ['dashboard-view-only'],
    },
    'viewer': {
        'name': 'Viewer', 'level': 10, 'is_system': True,
        'description': 'Read-only access',
        'permissions': [f'{m}-view-only' for m in MODULES if m not in ('admins', 'roles', 'permissions', 'settings')],
    },
}

__all__ = [
    'MODULES', 'OPERATIONS', 'PERMISSION_CATEGORIES', 'MODULE_DEFINITIONS', 'OPERATION_DEFINITIONS',
    'SUPER_ADMIN_SLUG', 'slugify', 'validate_module', 'validate_operations',
    'DEFAULT_PERMISSIONS', 'ROLE_PRESETS',
]
