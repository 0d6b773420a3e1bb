"""Unit tests for provider schema extraction"""

import pytest

from provider_index.models.provider import ProviderAttribute
from provider_index.services.schema_extractor import (
    ExtractionError,
    ProviderSchemaExtractor,
    display_name_for,
    infer_registration_kind,
    struct_name_to_resource_name,
    summarize_breaking_changes,
)

WIDGET_RESOURCE_GO = """package widget

import (
	"time"

	"github.com/hashicorp/go-azure-sdk/resource-manager/web/2023-01-01/widgets"
	"github.com/hashicorp/terraform-provider-azurerm/internal/tf/pluginsdk"
)

func Resources() map[string]*pluginsdk.Resource {
	return map[string]*pluginsdk.Resource{
		"azurerm_widget": resourceWidget(),
	}
}

func resourceWidget() *pluginsdk.Resource {
	resource := &pluginsdk.Resource{
		Description:        "Manages a " + "widget.",
		DeprecationMessage: "use azurerm_gadget instead",

		Importer: pluginsdk.ImporterValidatingResourceId(widgets.ValidateWidgetID),

		Timeouts: &pluginsdk.ResourceTimeout{
			Create: pluginsdk.DefaultTimeout(30 * time.Minute),
		},

		CustomizeDiff: pluginsdk.CustomizeDiffShim(widgetCustomizeDiff),

		Schema: widgetSchema(),
	}

	return resource
}
"""

WIDGET_SCHEMA_GO = """package widget

import "github.com/hashicorp/terraform-provider-azurerm/internal/tf/pluginsdk"

func widgetSchema() map[string]*pluginsdk.Schema {
	return map[string]*pluginsdk.Schema{
		"name": {
			Type:         pluginsdk.TypeString,
			Required:     true,
			ForceNew:     true,
			ValidateFunc: validation.StringIsNotEmpty,
		},

		"sku": {
			Type:          pluginsdk.TypeString,
			Optional:      true,
			Default:       "Standard",
			ConflictsWith: []string{"tier", "size"},
			Deprecated:    "sku is deprecated",
		},

		"tier": {
			Type:         pluginsdk.TypeString,
			Optional:     true,
			ExactlyOneOf: []string{"tier", "size"},
		},

		"tags": {
			Type:     pluginsdk.TypeMap,
			Optional: true,
			Elem: &pluginsdk.Schema{
				Type: pluginsdk.TypeString,
			},
		},

		"rule": {
			Type:     pluginsdk.TypeList,
			Optional: true,
			MaxItems: 1,
			MinItems: 0,
			Elem: &pluginsdk.Resource{
				Schema: map[string]*pluginsdk.Schema{
					"enabled": {
						Type:     pluginsdk.TypeBool,
						Optional: true,
					},
				},
			},
		},

		"location": commonschema.Location(),

		"secret": {
			Type:      pluginsdk.TypeString,
			Sensitive: true,
			Computed:  true,
		},
	}
}
"""

DUPLICATE_REGISTRATIONS_GO = """package provider

func first() map[string]*pluginsdk.Resource {
	return map[string]*pluginsdk.Resource{
		"azurerm_thing":    resourceThing(),
		"azurerm_thing_ds": dataSourceThing(),
	}
}

func second() map[string]*pluginsdk.Resource {
	return map[string]*pluginsdk.Resource{
		"azurerm_thing":           resourceThingV2(),
		"azurerm_thing_ds":        resourceThingDs(),
		"azurerm_thing_action":    thingAction(),
		"azurerm_thing_list":      thingListResource(),
		"azurerm_thing_ephemeral": ephemeralThing(),
	}
}
"""

DUPLICATE_BUILDERS_GO = """package provider

func SupportedResources() map[string]*pluginsdk.Resource {
	return map[string]*pluginsdk.Resource{
		"x_a": resourceFirst(),
	}
}

func MoreResources() map[string]*pluginsdk.Resource {
	return map[string]*pluginsdk.Resource{
		"x_a": resourceSecond(),
	}
}

func resourceFirst() *pluginsdk.Resource {
	return &pluginsdk.Resource{
		Description: "first",
		Schema: map[string]*pluginsdk.Schema{
			"one": {
				Type:     pluginsdk.TypeString,
				Optional: true,
			},
		},
	}
}

func resourceSecond() *pluginsdk.Resource {
	return &pluginsdk.Resource{
		Description: "second",
		Schema: map[string]*pluginsdk.Schema{
			"two": {
				Type:     pluginsdk.TypeString,
				Required: true,
			},
		},
	}
}
"""

VAR_DECLARED_GO = """package provider

func SupportedResources() map[string]*pluginsdk.Resource {
	return map[string]*pluginsdk.Resource{
		"azurerm_declared": resourceDeclared(),
		"azurerm_missing":  resourceMissing(),
	}
}

func resourceDeclared() *pluginsdk.Resource {
	var resource = &pluginsdk.Resource{
		Description: "Declared with var",
	}
	return resource
}
"""


class TestHelpers:
    """Test naming and summary helpers"""

    @pytest.mark.parametrize(
        "func_name,expected",
        [
            ("resourceVirtualNetwork", "resource"),
            ("dataSourceVirtualNetwork", "data_source"),
            ("dataSourceListThings", "data_source"),
            ("resourceStartAction", "action"),
            ("thingListResource", "list"),
            ("ephemeralKeyVaultSecret", "ephemeral"),
        ],
    )
    def test_infer_registration_kind(self, func_name, expected):
        assert infer_registration_kind(func_name) == expected

    @pytest.mark.parametrize(
        "struct_name,expected",
        [
            ("AvailabilitySetResource", "azurerm_availability_set"),
            ("ImageDataSource", "azurerm_image"),
            ("VirtualMachineRestartAction", "azurerm_virtual_machine_restart"),
            ("KeyVaultSecretEphemeral", "azurerm_key_vault_secret"),
            ("Resource", ""),
        ],
    )
    def test_struct_name_to_resource_name(self, struct_name, expected):
        assert struct_name_to_resource_name(struct_name, "azurerm") == expected

    def test_display_name_for(self):
        assert display_name_for("azurerm_virtual_network", "azurerm") == "Virtual Network"
        assert display_name_for("azurerm_api_MANAGEMENT", "azurerm") == "Api Management"

    def test_summarize_breaking_changes_empty(self):
        assert summarize_breaking_changes([ProviderAttribute(name="name", required=True)]) == ""

    def test_summarize_breaking_changes(self):
        attributes = [
            ProviderAttribute(name="a", force_new=True),
            ProviderAttribute(name="b", force_new=True, conflicts_with="x"),
            ProviderAttribute(name="c", exactly_one_of="c, d"),
        ]

        assert summarize_breaking_changes(attributes) == (
            "ForceNew attributes: a, b\nConflicts: b ↔ x\nMutually exclusive: c ↔ c, d"
        )


class TestProviderSchemaExtractor:
    """Test registration discovery and schema walking"""

    def test_end_to_end_two_resources(self, provider_go, make_go_file):
        """Test the map idiom with one resource and one data source"""
        files = [make_go_file("internal/provider/provider.go", provider_go)]

        resources = ProviderSchemaExtractor(files, "x").extract()

        assert len(resources) == 2
        resource, data_source = resources
        assert (resource.name, resource.kind) == ("x_example", "resource")
        assert (data_source.name, data_source.kind) == ("x_example", "data_source")

        assert resource.breaking_changes
        assert "name" in resource.breaking_changes
        assert not data_source.breaking_changes

        assert resource.description == "Manages an example."
        assert resource.display_name == "Example"
        assert resource.api_version == "2022-09-01"
        assert resource.attributes[0].name == "name"
        assert resource.attributes[0].required is True
        assert resource.attributes[0].force_new is True
        assert data_source.attributes[0].force_new is False

    def test_registration_dedup(self, make_go_file):
        """Test that (name, kind) duplicates keep the first registration"""
        files = [make_go_file("internal/provider/registrations.go", DUPLICATE_REGISTRATIONS_GO)]

        registrations = ProviderSchemaExtractor(files, "azurerm").registrations()

        pairs = [(r.type_name, r.kind, r.func_name) for r in registrations]
        assert pairs == [
            ("azurerm_thing", "resource", "resourceThing"),
            ("azurerm_thing_ds", "data_source", "dataSourceThing"),
            ("azurerm_thing_ds", "resource", "resourceThingDs"),
            ("azurerm_thing_action", "action", "thingAction"),
            ("azurerm_thing_list", "list", "thingListResource"),
            ("azurerm_thing_ephemeral", "ephemeral", "ephemeralThing"),
        ]

    def test_duplicate_registration_keeps_first_builder(self, make_go_file):
        """Test that a repeated (name, kind) is built from the first builder only"""
        files = [make_go_file("internal/provider/provider.go", DUPLICATE_BUILDERS_GO)]

        resources = ProviderSchemaExtractor(files, "x").extract()

        summary = [(r.name, r.description, [a.name for a in r.attributes]) for r in resources]
        assert summary == [("x_a", "first", ["one"])]
        assert resources[0].source.function_name == "resourceFirst"

    def test_slice_idiom_produces_minimal_resources(self, registration_go, make_go_file):
        files = [make_go_file("internal/services/compute/registration.go", registration_go)]

        resources = ProviderSchemaExtractor(files, "azurerm").extract()

        assert [(r.name, r.kind) for r in resources] == [
            ("azurerm_availability_set", "resource"),
            ("azurerm_image", "data_source"),
            ("azurerm_virtual_machine_scale_set_standby_pool", "resource"),
        ]
        assert resources[0].display_name == "Availability Set"
        assert resources[0].attributes == []
        assert resources[0].source is None
        assert resources[0].service_dir == "compute"

    def test_schema_function_resolved_across_files(self, make_go_file):
        files = [
            make_go_file("internal/services/web/widget_resource.go", WIDGET_RESOURCE_GO),
            make_go_file("internal/services/web/widget_schema.go", WIDGET_SCHEMA_GO),
        ]

        resources = ProviderSchemaExtractor(files, "azurerm").extract()

        assert len(resources) == 1
        widget = resources[0]
        assert widget.file_path == "internal/services/web/widget_resource.go"
        assert widget.description == "Manages a widget."
        assert widget.deprecation_message == "use azurerm_gadget instead"
        assert widget.api_version == "2023-01-01"
        assert widget.service_dir == "web"
        assert [a.name for a in widget.attributes] == ["name", "sku", "tier", "tags", "rule", "secret"]
        assert widget.breaking_changes == (
            "ForceNew attributes: name\n"
            "Conflicts: sku ↔ tier, size\n"
            "Mutually exclusive: tier ↔ tier, size"
        )

    def test_attribute_field_mapping(self, make_go_file):
        files = [
            make_go_file("internal/services/web/widget_resource.go", WIDGET_RESOURCE_GO),
            make_go_file("internal/services/web/widget_schema.go", WIDGET_SCHEMA_GO),
        ]

        widget = ProviderSchemaExtractor(files, "azurerm").extract()[0]
        attributes = {a.name: a for a in widget.attributes}

        name = attributes["name"]
        assert name.type == "pluginsdk.TypeString"
        assert name.required and name.force_new
        assert name.validation == "validation.StringIsNotEmpty"

        sku = attributes["sku"]
        assert sku.optional is True
        assert sku.default_value == "Standard"
        assert sku.conflicts_with == "tier, size"
        assert sku.deprecated == "sku is deprecated"

        tags = attributes["tags"]
        assert tags.nested_block is False
        assert tags.elem_summary == "Type=pluginsdk.TypeString"
        assert tags.elem_type.startswith("&pluginsdk.Schema{")

        rule = attributes["rule"]
        assert rule.nested_block is True
        assert rule.max_items == 1
        assert rule.min_items == 0

        secret = attributes["secret"]
        assert secret.sensitive and secret.computed
        assert secret.required is False

    def test_source_snippets(self, make_go_file):
        files = [
            make_go_file("internal/services/web/widget_resource.go", WIDGET_RESOURCE_GO),
            make_go_file("internal/services/web/widget_schema.go", WIDGET_SCHEMA_GO),
        ]

        source = ProviderSchemaExtractor(files, "azurerm").extract()[0].source

        assert source is not None
        assert source.function_name == "resourceWidget"
        assert source.file_path == "internal/services/web/widget_resource.go"
        assert source.function_snippet.startswith("func resourceWidget()")
        assert source.schema_snippet == "widgetSchema()"
        assert source.importer_snippet.startswith("pluginsdk.ImporterValidatingResourceId")
        assert "DefaultTimeout" in source.timeouts_snippet
        assert "CustomizeDiffShim" in source.customize_diff_snippet
        assert source.state_upgraders_snippet is None

    def test_var_declared_literal_and_missing_builder(self, make_go_file):
        """Test that a missing builder is skipped without aborting extraction"""
        files = [make_go_file("internal/provider/declared.go", VAR_DECLARED_GO)]

        resources = ProviderSchemaExtractor(files, "azurerm").extract()

        assert [r.name for r in resources] == ["azurerm_declared"]
        assert resources[0].description == "Declared with var"
        assert resources[0].breaking_changes is None

    def test_unparseable_files_are_skipped(self, provider_go, make_go_file):
        files = [
            make_go_file("internal/provider/broken.go", "package broken\n\nfunc {\n"),
            make_go_file("internal/provider/provider.go", provider_go),
        ]

        resources = ProviderSchemaExtractor(files, "x").extract()

        assert len(resources) == 2

    def test_no_go_files_raises(self, make_go_file):
        files = [make_go_file("README.md", "# Readme\n")]

        with pytest.raises(ExtractionError, match="no Go files"):
            ProviderSchemaExtractor(files, "azurerm").extract()

    def test_no_resources_raises(self, make_go_file):
        files = [make_go_file("main.go", "package main\n\nfunc main() {}\n")]

        with pytest.raises(ExtractionError, match="no provider resources"):
            ProviderSchemaExtractor(files, "azurerm").extract()
