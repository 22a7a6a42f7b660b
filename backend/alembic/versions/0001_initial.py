from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "categorias",
        sa.Column("id_categoria", sa.Integer(), primary_key=True),
        sa.Column("nombre", sa.String(length=120), nullable=False),
    )
    op.create_index("ix_categorias_id_categoria", "categorias", ["id_categoria"])

    op.create_table(
        "proveedores",
        sa.Column("id_proveedor", sa.Integer(), primary_key=True),
        sa.Column("nombre", sa.String(length=200), nullable=False),
        sa.Column("rfc", sa.String(length=20), nullable=True),
        sa.Column("telefono", sa.String(length=40), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("direccion", sa.String(length=255), nullable=True),
        sa.Column("contacto", sa.String(length=120), nullable=True),
    )
    op.create_index("ix_proveedores_id_proveedor", "proveedores", ["id_proveedor"])

    op.create_table(
        "usuarios",
        sa.Column("id_usuario", sa.Integer(), primary_key=True),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("contrasena", sa.String(length=255), nullable=False),
        sa.Column("rol", sa.String(length=50), nullable=False, server_default="Empleado"),
        sa.UniqueConstraint("nombre", name="uq_usuarios_nombre"),
    )
    op.create_index("ix_usuarios_id_usuario", "usuarios", ["id_usuario"])
    op.create_index("ix_usuarios_nombre", "usuarios", ["nombre"])

    op.create_table(
        "productos",
        sa.Column("id_producto", sa.Integer(), primary_key=True),
        sa.Column("codigo", sa.String(length=100), nullable=False),
        sa.Column("nombre", sa.String(length=255), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=True),
        sa.Column("cantidad", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tipo_unidad", sa.String(length=20), nullable=False, server_default="Pieza"),
        sa.Column("precio_unitario", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("stock_min", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock_max", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fecha_ingreso", sa.Date(), nullable=True),
        sa.Column("imagen_url", sa.String(length=1000), nullable=True),
        sa.Column("imagen_public_id", sa.String(length=255), nullable=True),
        sa.Column(
            "id_categoria", sa.Integer(),
            sa.ForeignKey("categorias.id_categoria", ondelete="RESTRICT"), nullable=True,
        ),
        sa.Column(
            "id_proveedor", sa.Integer(),
            sa.ForeignKey("proveedores.id_proveedor", ondelete="RESTRICT"), nullable=True,
        ),
        sa.CheckConstraint("cantidad >= 0", name="ck_productos_cantidad_no_negativa"),
    )
    op.create_index("ix_productos_id_producto", "productos", ["id_producto"])
    op.create_index("ix_productos_codigo", "productos", ["codigo"], unique=True)
    op.create_index("ix_productos_id_categoria", "productos", ["id_categoria"])
    op.create_index("ix_productos_id_proveedor", "productos", ["id_proveedor"])

    op.create_table(
        "movimientos",
        sa.Column("id_movimiento", sa.Integer(), primary_key=True),
        sa.Column(
            "id_producto", sa.Integer(),
            sa.ForeignKey("productos.id_producto", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("tipo", sa.String(length=20), nullable=False),
        sa.Column("cantidad", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "id_usuario", sa.Integer(),
            sa.ForeignKey("usuarios.id_usuario", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("fecha", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("producto_nombre", sa.String(length=255), nullable=True),
        sa.Column("producto_codigo", sa.String(length=100), nullable=True),
    )
    op.create_index("ix_movimientos_id_movimiento", "movimientos", ["id_movimiento"])
    op.create_index("ix_movimientos_id_producto", "movimientos", ["id_producto"])
    op.create_index("ix_movimientos_tipo", "movimientos", ["tipo"])
    op.create_index("ix_movimientos_id_usuario", "movimientos", ["id_usuario"])
    op.create_index("ix_movimientos_fecha", "movimientos", ["fecha"])


def downgrade() -> None:
    op.drop_table("movimientos")
    op.drop_table("productos")
    op.drop_table("usuarios")
    op.drop_table("proveedores")
    op.drop_table("categorias")
